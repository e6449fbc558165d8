"""
In-memory stand-ins for the agent side of the socket.

FakeAgent answers state requests and wallet logins itself; any other frame
type is answered by handlers registered with ``on``. Replies are delivered
inline, from the sending thread, just like a very fast agent would.
"""
import json
import struct
import time
from base64 import urlsafe_b64encode
from typing import Any, Callable, Dict, List

import pytest
from nacl.signing import SigningKey

from agent_connection import AgentConnection, AgentConnectionConfig
from agent_connection import protocol
from agent_connection.did import b58encode
from agent_connection.errors import AgentConnectionError

AGENT_URL = 'ws://agent.test:8094/ws'
SIGNATURE_TYPE = protocol.SPEC_BASE + 'signature/1.0/ed25519Sha512_single'


def generate_keypair():
    """(32 byte seed, base58 verkey) of a fresh Ed25519 key."""
    sk = SigningKey.generate()
    return bytes(sk._seed), b58encode(bytes(sk.verify_key))


def sign_field(value, seed, timestamp=None):
    """Sign ``value`` the way the inviting agent signs its connection response."""
    sk = SigningKey(seed)
    if timestamp is None:
        timestamp = int(time.time())
    sig_data = struct.pack('>Q', timestamp) + json.dumps(value).encode('utf-8')
    return {
        '@type': SIGNATURE_TYPE,
        'signature': urlsafe_b64encode(sk.sign(sig_data).signature).decode('ascii'),
        'sig_data': urlsafe_b64encode(sig_data).decode('ascii'),
        'signer': b58encode(bytes(sk.verify_key)),
    }


class FakeTransport:
    def __init__(self, agent, on_message, on_close, name=''):
        self.agent = agent
        self.name = name
        self.on_message = on_message
        self.on_close = on_close
        self.is_open = False
        self.closed_locally = False

    def open(self):
        if self.agent.refuse_connections:
            raise AgentConnectionError(f'Error connecting to {AGENT_URL}: refused')
        self.is_open = True

    def send(self, text):
        if not self.is_open:
            raise AgentConnectionError(f'{self.name}: transport is closed')
        self.agent.handle(self, json.loads(text))

    def deliver(self, frame):
        self.on_message(self, frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, error=None):
        """Simulate the agent closing the socket."""
        self.is_open = False
        self.on_close(self, True, error)

    def close(self):
        if self.is_open:
            self.is_open = False
            self.closed_locally = True
            self.on_close(self, False, None)


class FakeAgent:
    def __init__(self, password='secret'):
        self.password = password
        self.content: Dict[str, Any] = {
            'initialized': False,
            'agent_name': None,
            'pairwise_connections': [],
        }
        self.handlers: Dict[str, Callable[[dict], List[dict]]] = {}
        self.transports: List[FakeTransport] = []
        self.received: List[dict] = []
        self.refuse_connections = False

    def factory(self, url, on_message, on_close, name='', open_timeout=None, close_timeout=None):
        transport = FakeTransport(self, on_message, on_close, name)
        self.transports.append(transport)
        return transport

    @property
    def transport(self) -> FakeTransport:
        return self.transports[-1]

    def on(self, msg_type, handler):
        self.handlers[msg_type] = handler

    def sent_of_type(self, msg_type):
        return [f for f in self.received if f['@type'] == msg_type]

    def push(self, frame):
        self.transport.deliver(frame)

    def handle(self, transport, frame):
        self.received.append(frame)
        msg_type = frame['@type']
        if msg_type == protocol.STATE_REQUEST:
            transport.deliver({'@type': protocol.STATE, 'content': json.loads(json.dumps(self.content))})
        elif msg_type == protocol.CONNECT:
            if frame['passphrase'] == self.password:
                self.content['initialized'] = True
                self.content['agent_name'] = frame['name']
        elif msg_type in self.handlers:
            for reply in self.handlers[msg_type](frame):
                transport.deliver(reply)


def payload_frame(sender, class_name, payload, nested_strings=True):
    content = {'@class': class_name, 'message': payload, 'correlationId': 'c-1'}
    inner = {
        'from': sender,
        'sent_time': '2019-01-01 00:00:00',
        'content': json.dumps(content) if nested_strings else content,
    }
    return {
        '@type': protocol.MESSAGE_RECEIVED,
        'id': 'm-1',
        'with': sender,
        'message': json.dumps(inner) if nested_strings else inner,
    }


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def config():
    return AgentConnectionConfig(
        operation_timeout=2.0,
        reconnect_initial_delay=60.0,
        worker_threads=2,
        invite_label='alice',
    )


@pytest.fixture
def connection(agent, config):
    conn = AgentConnection(config, transport_factory=agent.factory)
    conn.connect(AGENT_URL, 'alice', 'secret')
    yield conn
    conn.disconnect()
