"""
Duplex text-frame transport to the agent over a WebSocket.

One reader thread per transport consumes inbound frames and hands them to
``on_message`` inline. Closure is reported exactly once through
``on_close(transport, remote, error)``: ``remote`` is False only when the
transport was closed locally, ``error`` is set when the socket failed.
"""
import logging
import threading
from typing import Callable, Optional
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect
from .errors import AgentConnectionError

logger = logging.getLogger(__name__)

MessageHandler = Callable[['WebSocketTransport', str], None]
CloseHandler = Callable[['WebSocketTransport', bool, Optional[BaseException]], None]


class WebSocketTransport:
    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        on_close: CloseHandler,
        name: str = '',
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
    ):
        self.url = url
        self.name = name or url
        self._on_message = on_message
        self._on_close = on_close
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._ws: Optional[ClientConnection] = None
        self._reader: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()
        self._closed = threading.Event()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed.is_set()

    def open(self) -> None:
        try:
            self._ws = connect(
                self.url,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            )
        except (OSError, TimeoutError, InvalidURI, InvalidHandshake) as e:
            self._closed.set()
            raise AgentConnectionError(f'Error connecting to {self.url}: {e}') from e
        logger.info('%s: connection opened to %s', self.name, self.url)
        self._reader = threading.Thread(
            target=self._read_loop, name=f'agent-io-{self.name}', daemon=True)
        self._reader.start()

    def send(self, text: str) -> None:
        ws = self._ws
        if ws is None or self._closed.is_set():
            raise AgentConnectionError(f'{self.name}: transport is closed')
        with self._send_lock:
            try:
                ws.send(text)
            except ConnectionClosed as e:
                raise AgentConnectionError(f'{self.name}: transport closed while sending: {e}') from e
        # frames may carry the wallet passphrase
        logger.debug('%s: sent %d chars', self.name, len(text))

    def close(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is not None:
            ws.close()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(self._close_timeout)

    def _read_loop(self) -> None:
        error: Optional[BaseException] = None
        try:
            # the socket is closed however the loop exits
            with self._ws as ws:
                for message in ws:
                    if isinstance(message, bytes):
                        try:
                            message = message.decode('utf-8')
                        except UnicodeDecodeError as e:
                            logger.warning('%s: dropping undecodable frame: %s', self.name, e)
                            continue
                    logger.debug('%s: received %s', self.name, message)
                    try:
                        self._on_message(self, message)
                    except Exception:
                        logger.exception('%s: failed to handle frame, dropping it', self.name)
        except (ConnectionClosed, OSError) as e:
            error = e
        except Exception as e:
            logger.exception('%s: reader failed', self.name)
            error = e
        finally:
            self._closed.set()
            remote = not self._closing
            if error is not None:
                logger.warning('%s: connection closed with error: %s', self.name, error)
            else:
                logger.info('%s: connection closed (remote=%s)', self.name, remote)
            self._on_close(self, remote, error)
