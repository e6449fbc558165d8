from .types import ConnectionStatus, Invite, PairwiseConnection, TailsRequest, TailsResponse
from .config import AgentConnectionConfig
from .errors import (
    AgentConnectionSDKError,
    AgentConnectionError,
    ClassificationError,
    InvalidInviteError,
    SignatureError,
    TailsError,
    TransientPairingError,
)
from .classifier import FrameCategory, classify
from .mailbox import Mailbox
from .invite import decode_invite, encode_invite
from .connection import AgentConnection
from .party import RemoteParty, TailsServer
from .tails import TailsReader, TailsWriter

__all__ = [
    'AgentConnection',
    'AgentConnectionConfig',
    'AgentConnectionError',
    'AgentConnectionSDKError',
    'ClassificationError',
    'ConnectionStatus',
    'FrameCategory',
    'Invite',
    'InvalidInviteError',
    'Mailbox',
    'PairwiseConnection',
    'RemoteParty',
    'SignatureError',
    'TailsError',
    'TailsReader',
    'TailsRequest',
    'TailsResponse',
    'TailsServer',
    'TailsWriter',
    'TransientPairingError',
    'classify',
    'decode_invite',
    'encode_invite',
]
