"""
Reconnection policy.

Senders need the transport now: ``reconnect_blocking`` makes one immediate
attempt on the calling thread and reports the outcome. Receivers can wait:
``schedule`` starts a background loop that retries with a doubling delay
until an attempt succeeds or ``stop`` is called. Attempts from both paths
are serialized, so at most one reconnect runs at a time.
"""
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ReconnectionCoordinator:
    def __init__(
        self,
        reconnect: Callable[[], None],
        is_open: Callable[[], bool],
        initial_delay: float = 3.0,
        max_delay: float = 60.0,
        name: str = '',
    ):
        self._reconnect = reconnect
        self._is_open = is_open
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.name = name
        self._attempt_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()
        self._loop: Optional[threading.Thread] = None

    @property
    def is_scheduled(self) -> bool:
        loop = self._loop
        return loop is not None and loop.is_alive()

    def _attempt(self) -> bool:
        if self._is_open():
            return True
        try:
            self._reconnect()
        except Exception as e:
            logger.warning('%s: reconnection attempt failed: %s', self.name, e)
            return False
        logger.info('%s: reconnected', self.name)
        return True

    def reconnect_blocking(self, timeout: Optional[float] = None) -> bool:
        """
        Reconnect on the calling thread. Returns True when the transport is open.
        """
        if self._stopped.is_set():
            return False
        acquired = self._attempt_lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            logger.error('%s: timed out waiting for a reconnection in progress', self.name)
            return False
        try:
            if self._stopped.is_set():
                return False
            return self._attempt()
        finally:
            self._attempt_lock.release()

    def schedule(self) -> None:
        """
        Start the background reconnect loop unless one is already running.
        """
        with self._state_lock:
            if self._stopped.is_set() or self.is_scheduled:
                return
            self._loop = threading.Thread(
                target=self._run, name=f'agent-reconnect-{self.name}', daemon=True)
            self._loop.start()

    def _run(self) -> None:
        delay = self.initial_delay
        while True:
            logger.info('%s: will attempt to reconnect in %.1fs', self.name, delay)
            if self._stopped.wait(delay):
                logger.info('%s: reconnection stopped', self.name)
                return
            with self._attempt_lock:
                if self._stopped.is_set():
                    return
                if self._attempt():
                    return
            if delay * 2 < self.max_delay:
                delay *= 2

    def stop(self) -> None:
        self._stopped.set()
        loop = self._loop
        if loop is not None and loop is not threading.current_thread():
            loop.join(timeout=1.0)
