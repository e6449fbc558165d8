import json
from base64 import urlsafe_b64decode
from typing import Any, Dict
from nacl.signing import VerifyKey
from nacl.exceptions import BadSignatureError
from .did import verkey_to_bytes
from .errors import SignatureError


def _b64decode(text: str) -> bytes:
    return urlsafe_b64decode(text + '=' * (-len(text) % 4))


def verify_signed_field(signed: Dict[str, Any]) -> Any:
    """
    Verify a signed field against its signer verkey and return the signed value.
    The signed data is an 8-byte big-endian timestamp followed by the JSON value.
    """
    try:
        vk = VerifyKey(verkey_to_bytes(signed['signer']))
        sig_data = _b64decode(signed['sig_data'])
        vk.verify(sig_data, _b64decode(signed['signature']))
        return json.loads(sig_data[8:].decode('utf-8'))
    except (BadSignatureError, KeyError, ValueError, TypeError) as e:
        raise SignatureError(f'invalid signed field: {e}') from e
