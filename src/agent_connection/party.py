"""
Remote party channel: typed exchanges with one counterparty over the shared
agent connection.

Payloads are opaque to this layer. Each kind travels under its peer class
name, so receives are correlated by (class name, counterparty DID).
"""
import logging
import threading
from concurrent.futures import CancelledError, Future
from typing import Any, Callable, Optional
from . import protocol
from .errors import AgentConnectionError
from .tails import (
    tails_request_from_wire,
    tails_request_to_wire,
    tails_response_from_wire,
    tails_response_to_wire,
)
from .types import PairwiseConnection, TailsRequest, TailsResponse

logger = logging.getLogger(__name__)

TailsHandler = Callable[[TailsRequest], TailsResponse]


class RemoteParty:
    def __init__(self, connection, pairwise: PairwiseConnection):
        self.connection = connection
        self.pairwise = pairwise

    @property
    def did(self) -> str:
        return self.pairwise.their_did

    @property
    def endpoint(self) -> Optional[str]:
        return self.pairwise.their_endpoint

    @property
    def verkey(self) -> Optional[str]:
        return self.pairwise.their_verkey

    def __repr__(self):
        return f'RemoteParty(did={self.did!r}, my_did={self.pairwise.my_did!r})'

    def send(self, payload: Any, class_name: str) -> None:
        self.connection.send(payload, class_name, self.did)

    def receive(self, class_name: str, convert: Optional[Callable[[Any], Any]] = None) -> Future:
        return self.connection.receive(class_name, self.did, convert)

    def send_credential_offer(self, offer: Any) -> None:
        self.send(offer, protocol.CREDENTIAL_OFFER)

    def receive_credential_offer(self) -> Future:
        return self.receive(protocol.CREDENTIAL_OFFER)

    def send_credential_request(self, request: Any) -> None:
        self.send(request, protocol.CREDENTIAL_REQUEST)

    def receive_credential_request(self) -> Future:
        return self.receive(protocol.CREDENTIAL_REQUEST)

    def send_credential(self, credential: Any) -> None:
        self.send(credential, protocol.CREDENTIAL)

    def receive_credential(self) -> Future:
        return self.receive(protocol.CREDENTIAL)

    def send_proof_request(self, request: Any) -> None:
        self.send(request, protocol.PROOF_REQUEST)

    def receive_proof_request(self) -> Future:
        return self.receive(protocol.PROOF_REQUEST)

    def send_proof(self, proof: Any) -> None:
        self.send(proof, protocol.PROOF)

    def receive_proof(self) -> Future:
        return self.receive(protocol.PROOF)

    def send_tails_request(self, request: TailsRequest) -> None:
        self.send(tails_request_to_wire(request), protocol.TAILS_REQUEST)

    def receive_tails_request(self) -> Future:
        return self.receive(protocol.TAILS_REQUEST, tails_request_from_wire)

    def send_tails_response(self, response: TailsResponse) -> None:
        self.send(tails_response_to_wire(response), protocol.TAILS_RESPONSE)

    def receive_tails_response(self) -> Future:
        return self.receive(protocol.TAILS_RESPONSE, tails_response_from_wire)

    def request_tails(self, tails_hash: str) -> Future:
        """
        Ask the counterparty for a tails file; the future yields its TailsResponse.
        """
        response = self.receive_tails_response()
        try:
            self.send_tails_request(TailsRequest(tails_hash))
        except AgentConnectionError:
            response.cancel()
            raise
        return response

    def serve_tails(self, handler: TailsHandler) -> 'TailsServer':
        """
        Answer every tails request from the counterparty with ``handler``
        until the returned server is stopped or the connection is closed.
        """
        server = TailsServer(self, handler)
        server.start()
        return server


class TailsServer:
    def __init__(self, party: RemoteParty, handler: TailsHandler):
        self.party = party
        self.handler = handler
        self.served = 0
        self._stopped = threading.Event()
        self._pending: Optional[Future] = None
        self._thread = threading.Thread(
            target=self._serve, name=f'tails-server-{party.did}', daemon=True)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        pending = self._pending
        if pending is not None:
            pending.cancel()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _serve(self) -> None:
        while not self._stopped.is_set() and self.party.connection.is_active:
            self._pending = self.party.receive_tails_request()
            if self._stopped.is_set():
                self._pending.cancel()
                break
            try:
                request = self._pending.result()
            except CancelledError:
                break
            except AgentConnectionError as e:
                logger.info('%s: waiting for tails request interrupted: %s', self.party.did, e)
                continue
            except Exception:
                logger.exception('%s: malformed tails request', self.party.did)
                continue
            try:
                response = self.handler(request)
                self.party.send_tails_response(response)
            except AgentConnectionError as e:
                logger.warning('%s: unable to answer tails request %s: %s',
                               self.party.did, request.tails_hash, e)
                continue
            except Exception:
                logger.exception('%s: tails handler failed for %s', self.party.did, request.tails_hash)
                continue
            self.served += 1
        logger.info('%s: tails server stopped', self.party.did)
