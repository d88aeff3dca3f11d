# tests/utils.py
"""
Single source of truth for test doubles and payload factories.
Nothing here touches the network.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from io import BytesIO

from PIL import Image

from picloader.core.cancel import CancellationToken
from picloader.core.fetch.downloader import Progress

DEFAULT_PAYLOAD = b"\x89PNG-not-really-but-non-empty"
WAIT_S = 5.0


def png_bytes(w: int = 32, h: int = 32, color: tuple[int, int, int] = (200, 40, 90)) -> bytes:
    """PNG with low compression so payloads are comfortably > a few chunks."""
    buf = BytesIO()
    Image.new("RGB", (w, h), color).save(buf, format="PNG", compress_level=0)
    return buf.getvalue()


def wait_until(predicate, timeout: float = WAIT_S, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class StubDownloader:
    """
    In-memory Fetcher.

    - `payloads` maps url -> bytes (missing urls get `default`)
    - with `gate`, every download blocks until the gate is set or the token is cancelled
    - `delay_s` sleeps (cancellably) before answering
    Records calls, cancellations and the peak number of concurrent downloads.
    """

    def __init__(
        self,
        payloads: dict[str, bytes] | None = None,
        *,
        default: bytes = DEFAULT_PAYLOAD,
        gate: threading.Event | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.payloads = dict(payloads or {})
        self.default = default
        self.gate = gate
        self.delay_s = delay_s
        self._lock = threading.Lock()
        self.calls: list[str] = []
        self.cancelled: list[str] = []
        self.active = 0
        self.peak = 0

    def download(
        self, url: str, token: CancellationToken | None = None, *, progress: Progress | None = None
    ) -> bytes:
        token = token or CancellationToken()
        with self._lock:
            self.calls.append(url)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.gate is not None:
                while not self.gate.wait(0.005):
                    if token.cancelled:
                        break
            elif self.delay_s:
                token.wait(self.delay_s)

            if token.cancelled:
                with self._lock:
                    self.cancelled.append(url)
                return b""
            data = self.payloads.get(url, self.default)
            if progress is not None and data:
                progress(len(data) // 2, len(data))
                progress(len(data), len(data))
            return data
        finally:
            with self._lock:
                self.active -= 1

    def calls_for(self, url: str) -> int:
        with self._lock:
            return self.calls.count(url)


class FakeResponse:
    """Just enough of requests.Response for the streaming downloader."""

    def __init__(self, status: int = 200, body: bytes = b"", *, chunk: int = 1024, headers: dict[str, str] | None = None):
        self.status_code = status
        self.headers = headers or {"Content-Type": "image/png"}
        self._body = body
        self._chunk = chunk
        self.closed = False

    def iter_content(self, chunk_size: int = 1024) -> Iterable[bytes]:
        sz = max(1, min(chunk_size, self._chunk))
        for i in range(0, len(self._body), sz):
            yield self._body[i : i + sz]

    def close(self) -> None:
        self.closed = True


class Recorder:
    """Thread-safe event log for ordering assertions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[object] = []

    def add(self, event: object) -> None:
        with self._lock:
            self.events.append(event)

    def sink(self, name: str = "sink"):
        return lambda value: self.add((name, value))

    def action(self, name: str):
        return lambda: self.add(name)

    def snapshot(self) -> list[object]:
        with self._lock:
            return list(self.events)


class FakeAnimation:
    def __init__(self, recorder: Recorder, name: str = "anim") -> None:
        self._rec = recorder
        self._name = name
        self.played = 0
        self.disposed = 0

    def play(self) -> None:
        self.played += 1
        self._rec.add(f"{self._name}:play")

    def dispose(self) -> None:
        self.disposed += 1
        self._rec.add(f"{self._name}:dispose")
