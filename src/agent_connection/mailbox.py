"""
Correlation mailbox.

For every correlation key the mailbox holds either a FIFO of messages that
arrived before anybody asked for them, or a FIFO of waiters (futures) that
asked before the message arrived. Never both: an arriving message satisfies
the oldest waiter, a new waiter consumes the oldest buffered message.

All structural changes happen under a single lock. Futures are claimed
inside the lock and completed after it is released, so waiter callbacks may
safely call back into the mailbox.
"""
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Any, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ('messages', 'waiters')

    def __init__(self):
        self.messages: Deque[Any] = deque()
        self.waiters: Deque[Future] = deque()


class Mailbox:
    def __init__(self, name: str = ''):
        self.name = name
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _release_if_empty(self, key: str, entry: _Entry) -> None:
        if not entry.messages and not entry.waiters:
            del self._entries[key]

    def resolve_inbound(self, key: str, message: Any) -> bool:
        """
        Deliver a message to the oldest live waiter for ``key``, or buffer it.
        Returns True when a waiter received the message.
        """
        waiter = None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            while entry.waiters:
                candidate = entry.waiters.popleft()
                # cancelled waiters (timed out callers) are dropped here
                if candidate.set_running_or_notify_cancel():
                    waiter = candidate
                    break
            if waiter is None:
                entry.messages.append(message)
            else:
                self._release_if_empty(key, entry)

        if waiter is None:
            logger.debug('%s: no waiter for %s, message buffered', self.name, key)
            return False
        waiter.set_result(message)
        return True

    def await_or_register(self, key: str, waiter: Optional[Future] = None) -> Future:
        """
        Return a future for the next message under ``key``. It is completed
        immediately when a message is already buffered.
        """
        if waiter is None:
            waiter = Future()
        message = None
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.messages:
                if not waiter.set_running_or_notify_cancel():
                    return waiter
                message = entry.messages.popleft()
                self._release_if_empty(key, entry)
            else:
                if entry is None:
                    entry = self._entries[key] = _Entry()
                entry.waiters.append(waiter)
                return waiter
        waiter.set_result(message)
        return waiter

    def fail_all_waiters(self, error: BaseException) -> int:
        """
        Complete every parked waiter with ``error``. Buffered messages stay.
        """
        claimed: List[Future] = []
        with self._lock:
            for key in list(self._entries):
                entry = self._entries[key]
                while entry.waiters:
                    waiter = entry.waiters.popleft()
                    if waiter.set_running_or_notify_cancel():
                        claimed.append(waiter)
                self._release_if_empty(key, entry)

        for waiter in claimed:
            waiter.set_exception(error)
        if claimed:
            logger.info('%s: failed %d parked waiter(s): %s', self.name, len(claimed), error)
        return len(claimed)

    def discard(self, key: str, waiter: Future) -> bool:
        """
        Cancel a parked waiter and remove it from its queue.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or waiter not in entry.waiters:
                return False
            entry.waiters.remove(waiter)
            self._release_if_empty(key, entry)
        return waiter.cancel()

    def buffered(self, key: str) -> List[Any]:
        with self._lock:
            entry = self._entries.get(key)
            return list(entry.messages) if entry is not None else []

    def waiting(self, key: str) -> int:
        with self._lock:
            entry = self._entries.get(key)
            return len(entry.waiters) if entry is not None else 0

    def snapshot(self) -> Dict[str, Tuple[int, int]]:
        """
        Map of key -> (buffered messages, parked waiters).
        """
        with self._lock:
            return {k: (len(e.messages), len(e.waiters)) for k, e in self._entries.items()}
