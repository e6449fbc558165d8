import enum
from dataclasses import dataclass, field
from typing import Dict, Optional


class ConnectionStatus(enum.Enum):
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'


@dataclass(frozen=True)
class PairwiseConnection:
    my_did: str
    their_did: str
    their_verkey: Optional[str] = None
    their_endpoint: Optional[str] = None


@dataclass(frozen=True)
class Invite:
    public_key: str
    label: str
    endpoint: str


@dataclass(frozen=True)
class TailsRequest:
    tails_hash: str


@dataclass(frozen=True)
class TailsResponse:
    tails_hash: str
    tails: Dict[str, bytes] = field(default_factory=dict)
