"""
Exception hierarchy for the agent connection layer.

Everything raised by this package inherits from AgentConnectionSDKError.
"""
from typing import Optional


class AgentConnectionSDKError(Exception):
    """Base exception for all agent connection errors."""
    pass


class AgentConnectionError(AgentConnectionSDKError):
    """Fatal connection failure (handshake, state mismatch, lost transport)."""
    pass


class TransientPairingError(AgentConnectionError):
    """The remote party has not yet reported to the agent. Retry later."""

    def __init__(self, message: str, their_did: Optional[str] = None):
        super().__init__(message)
        self.their_did = their_did


class ClassificationError(AgentConnectionSDKError):
    """Inbound frame cannot be routed to a correlation key."""
    pass


class InvalidInviteError(AgentConnectionSDKError):
    """Invite token is malformed."""
    pass


class SignatureError(AgentConnectionSDKError):
    """A signed field failed Ed25519 verification."""
    pass


class TailsError(AgentConnectionSDKError):
    """Tails file name or hash is not acceptable."""
    pass
