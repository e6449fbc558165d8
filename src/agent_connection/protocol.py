"""
Agent admin protocol message types and outbound message builders.
"""
import json
import uuid
from typing import Any, Dict, Optional

SPEC_BASE = 'did:sov:BzCbsNYhMrjHiqZDTUASHg;spec/'
CONN_BASE = SPEC_BASE + 'connections/1.0/'
ADMIN_BASE = SPEC_BASE + 'admin/1.0/'
ADMIN_CONNECTIONS_BASE = SPEC_BASE + 'admin_connections/1.0/'
ADMIN_WALLETCONNECTION_BASE = SPEC_BASE + 'admin_walletconnection/1.0/'
ADMIN_BASICMESSAGE_BASE = SPEC_BASE + 'admin_basicmessage/1.0/'

CONNECT = ADMIN_WALLETCONNECTION_BASE + 'connect'
DISCONNECT = ADMIN_WALLETCONNECTION_BASE + 'disconnect'

STATE_REQUEST = ADMIN_BASE + 'state_request'
STATE = ADMIN_BASE + 'state'

SEND_MESSAGE = ADMIN_BASICMESSAGE_BASE + 'send_message'
MESSAGE_SENT = ADMIN_BASICMESSAGE_BASE + 'message_sent'
MESSAGE_RECEIVED = ADMIN_BASICMESSAGE_BASE + 'message_received'

GENERATE_INVITE = ADMIN_CONNECTIONS_BASE + 'generate_invite'
INVITE_GENERATED = ADMIN_CONNECTIONS_BASE + 'invite_generated'
RECEIVE_INVITE = ADMIN_CONNECTIONS_BASE + 'receive_invite'
INVITE_RECEIVED = ADMIN_CONNECTIONS_BASE + 'invite_received'
SEND_REQUEST = ADMIN_CONNECTIONS_BASE + 'send_request'
REQUEST_SENT = ADMIN_CONNECTIONS_BASE + 'request_sent'
REQUEST_RECEIVED = ADMIN_CONNECTIONS_BASE + 'request_received'
SEND_RESPONSE = ADMIN_CONNECTIONS_BASE + 'send_response'
RESPONSE_SENT = ADMIN_CONNECTIONS_BASE + 'response_sent'
RESPONSE_RECEIVED = ADMIN_CONNECTIONS_BASE + 'response_received'

# Payload class names understood by peers on the other side of the channel
MODELS_PACKAGE = 'com.luxoft.blockchainlab.hyperledger.indy.models.'
CREDENTIAL_OFFER = MODELS_PACKAGE + 'CredentialOffer'
CREDENTIAL_REQUEST = MODELS_PACKAGE + 'CredentialRequestInfo'
CREDENTIAL = MODELS_PACKAGE + 'CredentialInfo'
PROOF_REQUEST = MODELS_PACKAGE + 'ProofRequest'
PROOF = MODELS_PACKAGE + 'ProofInfo'
TAILS_REQUEST = MODELS_PACKAGE + 'TailsRequest'
TAILS_RESPONSE = MODELS_PACKAGE + 'TailsResponse'


def wallet_connect(name: str, passphrase: str) -> Dict[str, Any]:
    return {'@type': CONNECT, 'name': name, 'passphrase': passphrase}


def wallet_disconnect() -> Dict[str, Any]:
    return {'@type': DISCONNECT}


def state_request() -> Dict[str, Any]:
    return {'@type': STATE_REQUEST}


def generate_invite() -> Dict[str, Any]:
    return {'@type': GENERATE_INVITE}


def receive_invite(invite: str, label: str = '') -> Dict[str, Any]:
    return {'@type': RECEIVE_INVITE, 'invite': invite, 'label': label}


def send_request(connection_key: str) -> Dict[str, Any]:
    return {'@type': SEND_REQUEST, 'connection_key': connection_key}


def send_response(did: str) -> Dict[str, Any]:
    return {'@type': SEND_RESPONSE, 'did': did}


def send_message(to: str, payload: Any, class_name: str,
                 correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Wrap an opaque payload for delivery to another party.
    The typed body travels JSON-encoded in the 'message' field.
    """
    body = {
        'message': payload,
        '@class': class_name,
        'correlationId': correlation_id or str(uuid.uuid4()),
    }
    return {'@type': SEND_MESSAGE, 'to': to, 'message': json.dumps(body)}
