# picloader/core/cancel.py
"""
Thread-safe cancellation signal shared by fetches, preload batches and processes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .errors import OperationCancelledError

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class CancellationToken:
    """
    One-shot cancellation flag with callbacks.

    Callbacks run exactly once, on the thread that calls `cancel()`, or right away
    when registered on a token that is already cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callback] = {}
        self._next_id = 0

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        for cb in callbacks:
            try:
                cb()
            except Exception:
                logger.exception("cancellation callback failed")

    def register(self, callback: Callback) -> Callback:
        """Run `callback` on cancellation. Returns a callable that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                reg_id = self._next_id
                self._next_id += 1
                self._callbacks[reg_id] = callback

                def _unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(reg_id, None)

                return _unregister

        try:
            callback()
        except Exception:
            logger.exception("cancellation callback failed")
        return _noop

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("operation cancelled")

    @classmethod
    def linked(cls, *parents: CancellationToken | None) -> CancellationToken:
        """Child token that is cancelled as soon as any parent is."""
        child = cls()
        for parent in parents:
            if parent is not None:
                parent.register(child.cancel)
        return child

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


def _noop() -> None:
    return None


def ensure_token(token: CancellationToken | None) -> CancellationToken:
    return token if token is not None else CancellationToken()


__all__ = ["CancellationToken", "ensure_token"]
