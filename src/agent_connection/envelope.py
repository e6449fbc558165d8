import json
from typing import Any, Dict, Tuple
from .errors import ClassificationError


def encode_frame(frame: Dict[str, Any]) -> str:
    """
    Serialize an outbound frame as compact JSON with stable key ordering.
    """
    return json.dumps(frame, separators=(',', ':'), sort_keys=True)


def decode_frame(text: str) -> Dict[str, Any]:
    """
    Parse an inbound frame. The result always carries a string '@type'.
    """
    try:
        frame = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise ClassificationError(f'frame is not valid JSON: {e}') from e
    if not isinstance(frame, dict) or not isinstance(frame.get('@type'), str):
        raise ClassificationError('frame has no @type')
    return frame


def _as_object(value: Any, field: str) -> Dict[str, Any]:
    # agents may nest the wrapper levels as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (ValueError, RecursionError) as e:
            raise ClassificationError(f'{field} is not valid JSON: {e}') from e
    if not isinstance(value, dict):
        raise ClassificationError(f'{field} is not an object')
    return value


def unwrap_payload(frame: Dict[str, Any]) -> Tuple[str, str, Any]:
    """
    Extract (class name, sender DID, payload) from a message_received frame.
    The payload itself is returned exactly as the sender passed it.
    """
    if '@class' in frame:
        body = frame
        sender = frame.get('from')
    else:
        inner = _as_object(frame.get('message'), 'message')
        sender = inner.get('from')
        body = _as_object(inner.get('content'), 'content')
    class_name = body.get('@class')
    if not isinstance(class_name, str) or not class_name:
        raise ClassificationError('payload has no @class')
    if not isinstance(sender, str) or not sender:
        raise ClassificationError('payload has no sender')
    return class_name, sender, body.get('message')
