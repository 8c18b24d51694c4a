"""
Non-blocking delivery channels between the control loop and its observers.
"""

import queue
import threading
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class StateMailbox(Generic[T]):
    """One-slot mailbox that always holds the most recent value.

    Publishing never blocks: an unread value is replaced. Readers take the value
    out of the slot. Safe to use from any thread.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._value: Optional[T] = None
        self._full = False
        self.replaced = 0  # Values evicted before anyone read them

    def put(self, value: T) -> bool:
        """Store value, evicting an unread one. Returns True if a value was evicted."""
        with self._cond:
            evicted = self._full
            if evicted:
                self.replaced += 1
            self._value = value
            self._full = True
            self._cond.notify_all()
        return evicted

    def get(self, timeout: Optional[float] = None) -> T:
        """Wait for a value and take it. Raises queue.Empty on timeout."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._full, timeout=timeout):
                raise queue.Empty
            return self._take()

    def get_nowait(self) -> T:
        with self._cond:
            if not self._full:
                raise queue.Empty
            return self._take()

    def empty(self) -> bool:
        with self._cond:
            return not self._full

    def _take(self) -> T:
        value, self._value, self._full = self._value, None, False
        return value


class LogChannel(Generic[T]):
    """Bounded message queue where publishing drops the message when full."""

    def __init__(self, maxsize: int):
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, message: T) -> bool:
        """Queue message without blocking. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(message)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout: Optional[float] = None) -> T:
        """Wait for the next message. Raises queue.Empty on timeout."""
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> T:
        return self._queue.get_nowait()

    def drain(self) -> List[T]:
        """Take every queued message."""
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages

    def qsize(self) -> int:
        return self._queue.qsize()
