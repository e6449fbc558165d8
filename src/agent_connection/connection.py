"""
Agent connection: one multiplexed WebSocket to the agent, the wallet login
handshake, and the invite/request/response protocol that establishes
pairwise connections with other parties.

Every exchange is correlated through the session mailbox. Receives register
a waiter and never block; handshakes run as sequential procedures on an
operations pool and return futures. Whenever the socket is closed by the
remote side all parked waiters fail and a background reconnect is scheduled.
A send while disconnected reconnects on the calling thread or fails loudly.

Avoid connecting several clients to one agent concurrently: the agent routes
queued frames to whichever client is connected.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Iterable, Optional
from . import protocol
from .classifier import Route, classify, message_key, payload_key
from .config import AgentConnectionConfig
from .crypto import verify_signed_field
from .envelope import decode_frame, encode_frame
from .errors import (
    AgentConnectionError,
    ClassificationError,
    SignatureError,
    TransientPairingError,
)
from .invite import invite_public_key
from .mailbox import Mailbox
from .party import RemoteParty
from .reconnect import ReconnectionCoordinator
from .transport import WebSocketTransport
from .types import ConnectionStatus, PairwiseConnection

logger = logging.getLogger(__name__)


def _pairwise_field(entry: Dict[str, Any], name: str) -> Optional[str]:
    metadata = entry.get('metadata')
    if isinstance(metadata, dict) and metadata.get(name) is not None:
        return metadata[name]
    return entry.get(name)


def _pairwise_connections(state: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    content = state.get('content') or {}
    for entry in content.get('pairwise_connections') or []:
        if isinstance(entry, dict):
            yield entry


def _find_pairwise(state: Dict[str, Any], name: str, value: str) -> Optional[Dict[str, Any]]:
    for entry in _pairwise_connections(state):
        if _pairwise_field(entry, name) == value:
            return entry
    return None


def _unchanged(payload: Any) -> Any:
    return payload


def _required(frame: Dict[str, Any], name: str) -> str:
    value = frame.get(name)
    if not isinstance(value, str) or not value:
        raise AgentConnectionError(f'{frame.get("@type")} has no {name}')
    return value


class AgentConnection:
    def __init__(
        self,
        config: Optional[AgentConnectionConfig] = None,
        transport_factory: Callable[..., Any] = WebSocketTransport,
    ):
        self.config = config or AgentConnectionConfig()
        self.url: Optional[str] = None
        self.login: Optional[str] = None
        self._password: Optional[str] = None
        self._transport_factory = transport_factory
        self._transport = None
        self._status = ConnectionStatus.DISCONNECTED
        self._closing = True
        self.mailbox = Mailbox()
        self._reconnector: Optional[ReconnectionCoordinator] = None
        self._workers: Optional[ThreadPoolExecutor] = None
        self._operations: Optional[ThreadPoolExecutor] = None
        self._parties: Dict[str, RemoteParty] = {}
        self._parties_lock = threading.Lock()
        self._state_lock = threading.Lock()

    # lifecycle

    @property
    def status(self) -> ConnectionStatus:
        if self._status is ConnectionStatus.CONNECTED and not self._transport_is_open():
            self._status = ConnectionStatus.DISCONNECTED
        return self._status

    @property
    def is_active(self) -> bool:
        """
        True between connect() and disconnect(), even while reconnecting.
        """
        return not self._closing

    def _transport_is_open(self) -> bool:
        transport = self._transport
        return transport is not None and transport.is_open

    def connect(self, url: str, login: str, password: str) -> None:
        """
        Open the socket and make sure the agent runs the wallet of ``login``.
        Raises AgentConnectionError when either step fails.
        """
        if self.is_active:
            raise AgentConnectionError(f'{self.login}: already connected to {self.url}')
        self.url = url
        self.login = login
        self._password = password
        self._closing = False
        self.mailbox = Mailbox(name=login)
        self._workers = ThreadPoolExecutor(
            max_workers=self.config.worker_threads, thread_name_prefix=f'agent-worker-{login}')
        self._operations = ThreadPoolExecutor(thread_name_prefix=f'agent-op-{login}')
        self._reconnector = ReconnectionCoordinator(
            self._reopen,
            self._transport_is_open,
            initial_delay=self.config.reconnect_initial_delay,
            max_delay=self.config.operation_timeout,
            name=login,
        )
        try:
            self._reopen()
        except AgentConnectionError:
            self.disconnect()
            raise
        logger.info('%s: connected to %s', login, url)

    def disconnect(self, close_wallet: bool = False) -> None:
        self._closing = True
        if self._reconnector is not None:
            self._reconnector.stop()
        transport, self._transport = self._transport, None
        if transport is not None:
            if close_wallet and transport.is_open:
                try:
                    transport.send(encode_frame(protocol.wallet_disconnect()))
                except AgentConnectionError as e:
                    logger.warning('%s: unable to close the wallet: %s', self.login, e)
            transport.close()
        self._status = ConnectionStatus.DISCONNECTED
        self.mailbox.fail_all_waiters(AgentConnectionError(f'{self.login}: disconnected from {self.url}'))
        with self._parties_lock:
            self._parties.clear()
        for pool in (self._workers, self._operations):
            if pool is not None:
                pool.shutdown(wait=False)
        logger.info('%s: disconnected', self.login)

    def _reopen(self) -> None:
        """
        Replace the transport with a fresh one and log in to the wallet.
        """
        transport = self._transport_factory(
            self.url,
            on_message=self._on_transport_message,
            on_close=self._on_transport_closed,
            name=self.login,
            open_timeout=self.config.open_timeout,
            close_timeout=self.config.close_timeout,
        )
        transport.open()
        try:
            self._login(transport)
        except AgentConnectionError:
            transport.close()
            raise
        if self._closing:
            transport.close()
            raise AgentConnectionError(f'{self.login}: disconnected while connecting')
        self._transport = transport
        self._status = ConnectionStatus.CONNECTED

    def _logged_in(self, state: Dict[str, Any]) -> bool:
        content = state.get('content') or {}
        return content.get('initialized') is True and content.get('agent_name') == self.login

    def _login(self, transport) -> None:
        state = self._request(protocol.state_request(), message_key(protocol.STATE), transport)
        if self._logged_in(state):
            return
        # the agent runs another wallet (or none): take it over
        logger.info('%s: opening wallet on the agent', self.login)
        transport.send(encode_frame(protocol.wallet_connect(self.login, self._password)))
        state = self._request(protocol.state_request(), message_key(protocol.STATE), transport)
        if not self._logged_in(state):
            logger.error('%s: unable to connect to wallet', self.login)
            raise AgentConnectionError(f'Error connecting to {self.url} as {self.login}')

    # inbound

    def dispatch_frame(self, text: str) -> Route:
        """
        Classify one inbound frame and resolve it against the mailbox.
        Raises ClassificationError (and leaves the mailbox alone) for
        frames that cannot be routed.
        """
        route = classify(decode_frame(text))
        self.mailbox.resolve_inbound(route.key, route.body)
        return route

    def _on_transport_message(self, transport, text: str) -> None:
        try:
            self.dispatch_frame(text)
        except ClassificationError as e:
            logger.warning('%s: dropping frame: %s', self.login, e)

    def _on_transport_closed(self, transport, remote: bool, error: Optional[BaseException]) -> None:
        # a replaced transport, or a reconnect attempt that never logged in
        if transport is not self._transport:
            return
        reason = f'connection to {self.url} closed' + (f': {error}' if error else '')
        self.mailbox.fail_all_waiters(AgentConnectionError(reason))
        self._status = ConnectionStatus.DISCONNECTED
        if not self._closing and self._reconnector is not None:
            self._reconnector.schedule()

    # outbound

    def _ensure_transport(self):
        transport = self._transport
        if transport is not None and transport.is_open:
            return transport
        if self._reconnector is not None and not self._closing:
            if self._reconnector.reconnect_blocking(self.config.operation_timeout):
                transport = self._transport
                if transport is not None and transport.is_open:
                    return transport
        error = AgentConnectionError(f'{self.login}: agent at {self.url} is unreachable')
        self.mailbox.fail_all_waiters(error)
        raise error

    def _send(self, frame: Dict[str, Any]) -> None:
        text = encode_frame(frame)
        transport = self._ensure_transport()
        try:
            transport.send(text)
        except AgentConnectionError as e:
            # the socket died under us: one reconnect, then give up
            logger.warning('%s: send failed, reconnecting: %s', self.login, e)
            self._ensure_transport().send(text)

    def _receive(self, key: str) -> Future:
        waiter = self.mailbox.await_or_register(key)
        if not waiter.done() and not self._transport_is_open() and not self._closing:
            self._reconnector.schedule()
        return waiter

    def _wait(self, key: str, waiter: Future, timeout: Optional[float] = None) -> Any:
        if timeout is None:
            timeout = self.config.operation_timeout
        try:
            return waiter.result(timeout)
        except FutureTimeoutError:
            self.mailbox.discard(key, waiter)
            raise AgentConnectionError(f'{self.login}: no {key} within {timeout}s') from None

    def _request(self, frame: Dict[str, Any], key: str, transport=None) -> Any:
        """
        Send ``frame`` and wait for the frame correlated by ``key``. The
        waiter is registered first so a fast reply cannot be missed.
        """
        if transport is None:
            transport = self._ensure_transport()
        waiter = self.mailbox.await_or_register(key)
        try:
            transport.send(encode_frame(frame))
        except AgentConnectionError:
            self.mailbox.discard(key, waiter)
            raise
        return self._wait(key, waiter)

    def _query_state(self) -> Dict[str, Any]:
        # one outstanding state request at a time
        with self._state_lock:
            return self._request(protocol.state_request(), message_key(protocol.STATE))

    def _deliver(self, raw: Future, convert: Callable[[Any], Any]) -> Future:
        """
        Chain ``convert`` onto a mailbox future. Conversion runs on the worker
        pool, never on the transport reader thread.
        """
        result: Future = Future()

        def _convert():
            if not result.set_running_or_notify_cancel():
                return
            try:
                result.set_result(convert(raw.result()))
            except BaseException as e:
                result.set_exception(e)

        def _schedule(_):
            try:
                self._workers.submit(_convert)
            except RuntimeError:
                # worker pool already shut down
                _convert()

        result.add_done_callback(lambda f: f.cancelled() and raw.cancel())
        raw.add_done_callback(_schedule)
        return result

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        if self._operations is None or not self.is_active:
            failed: Future = Future()
            failed.set_exception(AgentConnectionError('Agent is disconnected'))
            return failed
        return self._operations.submit(fn, *args)

    def _require_connected(self) -> None:
        if self.status is not ConnectionStatus.CONNECTED:
            raise AgentConnectionError('AgentConnection object has wrong state')

    # opaque payloads

    def send(self, payload: Any, class_name: str, their_did: str) -> None:
        self._send(protocol.send_message(their_did, payload, class_name))

    def receive(self, class_name: str, their_did: str,
                convert: Optional[Callable[[Any], Any]] = None) -> Future:
        """
        Future for the next payload of ``class_name`` from ``their_did``,
        exactly as the sender passed it (or as mapped by ``convert``).
        """
        raw = self._receive(payload_key(class_name, their_did))
        return self._deliver(raw, convert or _unchanged)

    # pairwise connections

    def _register_party(self, pairwise: PairwiseConnection) -> RemoteParty:
        party = RemoteParty(self, pairwise)
        with self._parties_lock:
            self._parties[pairwise.their_did] = party
        logger.info('%s: pairwise connection established with %s', self.login, pairwise.their_did)
        return party

    def generate_invite(self) -> Future:
        """
        Ask the agent for a new invite; the future yields the invite token.
        """
        return self._submit(self._generate_invite)

    def _generate_invite(self) -> str:
        self._require_connected()
        frame = self._request(protocol.generate_invite(), message_key(protocol.INVITE_GENERATED))
        return _required(frame, 'invite')

    def accept_invite(self, invite: str) -> Future:
        """
        Connect to the party that generated ``invite``; yields a RemoteParty.
        """
        return self._submit(self._accept_invite, invite)

    def _accept_invite(self, invite: str) -> RemoteParty:
        self._require_connected()
        public_key = invite_public_key(invite)

        received = self._request(
            protocol.receive_invite(invite, self.config.invite_label),
            message_key(protocol.INVITE_RECEIVED, public_key))
        routing_key = received.get('connection_key') or public_key

        response = self._request(
            protocol.send_request(routing_key),
            message_key(protocol.RESPONSE_RECEIVED, public_key))
        connection = self._verify_response(response, public_key)
        their_did = response.get('their_did') or connection.get('DID')
        if not their_did:
            raise AgentConnectionError(f'response to invite {public_key} names no DID')
        their_verkey = response.get('their_vk') or public_key

        state = self._query_state()
        entry = _find_pairwise(state, 'their_vk', their_verkey)
        if entry is None:
            raise TransientPairingError(
                'Inviting party has not yet reported to the agent. Retry later.', their_did)
        return self._register_party(PairwiseConnection(
            my_did=_required(entry, 'my_did'),
            their_did=their_did,
            their_verkey=their_verkey,
            their_endpoint=_pairwise_field(entry, 'their_endpoint') or received.get('endpoint'),
        ))

    def _verify_response(self, response: Dict[str, Any], public_key: str) -> Dict[str, Any]:
        history = response.get('history')
        signed = history.get('connection~sig') if isinstance(history, dict) else None
        if not isinstance(signed, dict):
            return {}
        if signed.get('signer') != public_key:
            raise AgentConnectionError(f'response to invite {public_key} is signed by another key')
        try:
            connection = verify_signed_field(signed)
        except SignatureError as e:
            raise AgentConnectionError(f'response to invite {public_key} has a bad signature') from e
        return connection if isinstance(connection, dict) else {}

    def wait_for_invited_party(self, invite: str, timeout: Optional[float] = None) -> Future:
        """
        Wait for the holder of ``invite`` to connect; yields a RemoteParty.
        """
        return self._submit(self._wait_for_invited_party, invite, timeout)

    def _wait_for_invited_party(self, invite: str, timeout: Optional[float] = None) -> RemoteParty:
        self._require_connected()
        public_key = invite_public_key(invite)

        key = message_key(protocol.REQUEST_RECEIVED)
        request = self._wait(key, self._receive(key), timeout)
        requester_did = _required(request, 'did')
        self._send(protocol.send_response(requester_did))

        state = self._query_state()
        entry = _find_pairwise(state, 'connection_key', public_key)
        if entry is None:
            raise TransientPairingError(
                'Invited party has not yet reported to the agent. Retry later.', requester_did)
        their_did = _required(entry, 'their_did')

        key = message_key(protocol.RESPONSE_SENT, their_did)
        sent = self._wait(key, self._receive(key))
        return self._register_party(PairwiseConnection(
            my_did=_required(entry, 'my_did'),
            their_did=sent.get('did') or their_did,
            their_verkey=_pairwise_field(entry, 'their_vk'),
            their_endpoint=_pairwise_field(entry, 'their_endpoint') or request.get('endpoint'),
        ))

    def get_party(self, their_did: str) -> Future:
        """
        Look up an established pairwise connection by counterparty DID,
        falling back to the agent state. Yields None for unknown parties.
        """
        with self._parties_lock:
            party = self._parties.get(their_did)
        if party is not None:
            found: Future = Future()
            found.set_result(party)
            return found
        return self._submit(self._get_party, their_did)

    def _get_party(self, their_did: str) -> Optional[RemoteParty]:
        self._require_connected()
        entry = _find_pairwise(self._query_state(), 'their_did', their_did)
        if entry is None:
            logger.info('%s: remote party %s is unknown to the agent. '
                        'Initiate a new connection using generate_invite()/accept_invite()/wait_for_invited_party()',
                        self.login, their_did)
            return None
        return self._register_party(PairwiseConnection(
            my_did=_required(entry, 'my_did'),
            their_did=their_did,
            their_verkey=_pairwise_field(entry, 'their_vk'),
            their_endpoint=_pairwise_field(entry, 'their_endpoint'),
        ))
