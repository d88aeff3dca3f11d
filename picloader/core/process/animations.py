# picloader/core/process/animations.py
"""
Animation contract used by processes while they wait for an asset.

Concrete visual effects belong to the rendering layer. This module only provides
the protocol and `TickerAnimation`, a cooperative frame loop that calls a step
function until it is disposed.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_DEFAULT_FRAME_S = 1.0 / 60.0


@runtime_checkable
class Animation(Protocol):
    def play(self) -> None:
        """Start the effect; returns immediately."""
        ...

    def dispose(self) -> None:
        """Stop the effect and restore whatever it changed. Idempotent."""
        ...


class TickerAnimation:
    """
    Calls `step(elapsed_s)` once per frame on a daemon thread.

    The loop ends when `dispose()` is called or, if `duration_s` is set, once that
    much time has elapsed (the final step receives exactly `duration_s`).
    `on_stop` runs once, from `dispose()`.
    """

    def __init__(
        self,
        step: Callable[[float], None],
        *,
        frame_s: float = _DEFAULT_FRAME_S,
        duration_s: float | None = None,
        on_stop: Callable[[], None] | None = None,
    ) -> None:
        if frame_s <= 0:
            raise ValueError("frame_s must be > 0")
        self._step = step
        self._frame_s = frame_s
        self._duration_s = duration_s
        self._on_stop = on_stop
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._disposed = False
        self.frames = 0

    @property
    def playing(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive() and not self._stop.is_set()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def play(self) -> None:
        with self._lock:
            if self._disposed or self._thread is not None:
                return
            self._thread = threading.Thread(target=self._loop, name="picloader-animation", daemon=True)
            self._thread.start()

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._stop.set()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self._frame_s * 4))
        if self._on_stop is not None:
            try:
                self._on_stop()
            except Exception:
                logger.exception("animation on_stop failed")

    def _loop(self) -> None:
        start = time.monotonic()
        while not self._stop.is_set():
            elapsed = time.monotonic() - start
            finished = self._duration_s is not None and elapsed >= self._duration_s
            if finished:
                elapsed = float(self._duration_s)  # type: ignore[arg-type]
            try:
                self._step(elapsed)
            except Exception:
                logger.exception("animation step failed; stopping")
                return
            self.frames += 1
            if finished:
                return
            self._stop.wait(self._frame_s)


__all__ = ["Animation", "TickerAnimation"]
