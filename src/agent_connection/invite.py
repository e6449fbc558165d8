"""
Invite tokens: ``<endpoint>?c_i=<base64 JSON>``.

The JSON document follows the connections protocol invitation and carries
``recipientKeys`` (the first key identifies the invite), ``label`` and
``serviceEndpoint``.
"""
import base64
import binascii
import json
from urllib.parse import unquote
from .errors import InvalidInviteError
from .protocol import CONN_BASE
from .types import Invite

INVITE_PARAM = '?c_i='
INVITATION_TYPE = CONN_BASE + 'invitation'


def _b64decode(text: str) -> bytes:
    text = unquote(text).replace('-', '+').replace('_', '/')
    return base64.b64decode(text + '=' * (-len(text) % 4), validate=True)


def decode_invite(token: str) -> Invite:
    endpoint, sep, encoded = token.partition(INVITE_PARAM)
    if not sep or not encoded:
        raise InvalidInviteError(f'invite has no {INVITE_PARAM!r} parameter')
    try:
        doc = json.loads(_b64decode(encoded).decode('utf-8'))
    except (binascii.Error, ValueError) as e:
        raise InvalidInviteError(f'invite payload is not base64 JSON: {e}') from e
    keys = doc.get('recipientKeys') if isinstance(doc, dict) else None
    if not isinstance(keys, list) or not keys or not isinstance(keys[0], str):
        raise InvalidInviteError('invite has no recipient keys')
    return Invite(
        public_key=keys[0],
        label=doc.get('label', ''),
        endpoint=doc.get('serviceEndpoint') or endpoint,
    )


def encode_invite(invite: Invite) -> str:
    doc = {
        '@type': INVITATION_TYPE,
        'label': invite.label,
        'recipientKeys': [invite.public_key],
        'serviceEndpoint': invite.endpoint,
    }
    encoded = base64.urlsafe_b64encode(json.dumps(doc).encode('utf-8')).decode('ascii')
    return invite.endpoint + INVITE_PARAM + encoded


def invite_public_key(token: str) -> str:
    return decode_invite(token).public_key
