"""
Cancellation tokens.

A single token is passed by reference through every blocking step of a
pipeline run. ``CancelToken.linked`` composes a caller's token with a
timeout: whichever fires first cancels the child.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

from .errors import Cancelled, GenerationFailed

TIMEOUT = "timeout"
CANCELLED = "cancelled"


class CancelToken:
    """Thread-safe, one-shot cancellation flag with callbacks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._cleanup: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = CANCELLED) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run ``callback`` on cancellation (immediately if already cancelled).

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            if self.reason == TIMEOUT:
                raise GenerationFailed("Generation request timed out")
            raise Cancelled(self.reason or CANCELLED)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    @classmethod
    def linked(cls, parent: Optional["CancelToken"] = None, timeout: Optional[float] = None) -> "CancelToken":
        """
        Create a child token cancelled by ``parent`` or after ``timeout`` seconds.

        Use the child as a context manager so its timer and parent link are
        released when the guarded operation finishes.
        """
        child = cls()
        if parent is not None:
            unlink = parent.add_callback(lambda: child.cancel(parent.reason or CANCELLED))
            child._cleanup.append(unlink)
        if timeout is not None:
            timer = threading.Timer(timeout, child.cancel, args=(TIMEOUT,))
            timer.daemon = True
            timer.start()
            child._cleanup.append(timer.cancel)
        return child

    def close(self) -> None:
        cleanup, self._cleanup = self._cleanup, []
        for release in cleanup:
            release()

    def __enter__(self) -> "CancelToken":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
