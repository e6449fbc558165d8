"""
Frame classification: every inbound frame maps to exactly one correlation key.

The known frame types form a closed table. A frame outside the table cannot
be routed safely, so it is rejected rather than delivered to a guessed key.
"""
import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional
from . import protocol
from .envelope import unwrap_payload
from .errors import ClassificationError


class FrameCategory(enum.Enum):
    # keyed by @type alone
    SESSION = 'session'
    # generic application payload, keyed by class name + sender DID
    PAYLOAD = 'payload'
    # keyed by @type + invite public key
    INVITE_KEYED = 'invite_keyed'
    # keyed by @type + counterparty DID
    DID_KEYED = 'did_keyed'


FRAME_CATEGORIES = {
    protocol.STATE: FrameCategory.SESSION,
    protocol.INVITE_GENERATED: FrameCategory.SESSION,
    protocol.REQUEST_RECEIVED: FrameCategory.SESSION,
    protocol.REQUEST_SENT: FrameCategory.SESSION,
    protocol.MESSAGE_SENT: FrameCategory.SESSION,
    protocol.MESSAGE_RECEIVED: FrameCategory.PAYLOAD,
    protocol.INVITE_RECEIVED: FrameCategory.INVITE_KEYED,
    protocol.RESPONSE_RECEIVED: FrameCategory.INVITE_KEYED,
    protocol.RESPONSE_SENT: FrameCategory.DID_KEYED,
}


@dataclass(frozen=True)
class Route:
    key: str
    body: Any


def message_key(msg_type: str, qualifier: Optional[str] = None) -> str:
    return msg_type if qualifier is None else f'{msg_type}.{qualifier}'


def payload_key(class_name: str, sender_did: str) -> str:
    return f'{class_name}.{sender_did}'


def _connection_key(frame: Dict[str, Any]) -> Optional[str]:
    key = frame.get('connection_key')
    if key is None:
        # older agents only expose the invite key as the response signer
        history = frame.get('history')
        if isinstance(history, dict):
            sig = history.get('connection~sig')
            if isinstance(sig, dict):
                key = sig.get('signer')
    return key


def _require(value: Any, msg_type: str, field: str) -> str:
    if not isinstance(value, str) or not value:
        raise ClassificationError(f'{msg_type} frame has no {field}')
    return value


def classify(frame: Dict[str, Any]) -> Route:
    msg_type = frame.get('@type')
    category = FRAME_CATEGORIES.get(msg_type)
    if category is None:
        raise ClassificationError(f'unknown frame type: {msg_type!r}')

    if category is FrameCategory.SESSION:
        return Route(message_key(msg_type), frame)
    if category is FrameCategory.PAYLOAD:
        class_name, sender, payload = unwrap_payload(frame)
        return Route(payload_key(class_name, sender), payload)
    if category is FrameCategory.INVITE_KEYED:
        key = _require(_connection_key(frame), msg_type, 'connection_key')
        return Route(message_key(msg_type, key), frame)
    if category is FrameCategory.DID_KEYED:
        did = _require(frame.get('did'), msg_type, 'did')
        return Route(message_key(msg_type, did), frame)
    raise ClassificationError(f'unhandled frame category: {category}')
