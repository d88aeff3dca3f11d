# picloader/core/fetch/downloader.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import requests

from picloader.core.cancel import CancellationToken, ensure_token
from picloader.core.errors import (
    InputError,
    OperationCancelledError,
    PermanentNetworkError,
    TransientNetworkError,
    classify_status,
    network_error_guard,
)

if TYPE_CHECKING:
    from picloader.schemas.models import LoaderSettings

logger = logging.getLogger(__name__)

# ---------------------------
# Helpers / knobs
# ---------------------------

_DEFAULT_TIMEOUT_S = 30.0
_DEFAULT_ATTEMPTS = 3
_DEFAULT_CHUNK = 64 * 1024
_DEFAULT_UA = "picloader/0.1"

# (received_bytes, total_bytes or None when the server sent no Content-Length)
Progress = Callable[[int, int | None], None]


@dataclass(frozen=True)
class DownloadResult:
    """Outcome of one `Downloader.fetch` call (all attempts included)."""

    url: str
    data: bytes = b""
    status_code: int | None = None
    attempts: int = 0
    cancelled: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return bool(self.data) and not self.cancelled and self.error is None


@runtime_checkable
class Fetcher(Protocol):
    """What the scheduler needs from a fetcher: bytes for a URL, empty on failure or cancellation."""

    def download(
        self, url: str, token: CancellationToken | None = None, *, progress: Progress | None = None
    ) -> bytes: ...


def _headers_for(user_agent: str) -> dict[str, str]:
    return {"User-Agent": user_agent, "Accept": "image/*,*/*;q=0.8", "Connection": "close"}


def _content_length(resp: requests.Response) -> int | None:
    raw = (getattr(resp, "headers", None) or {}).get("Content-Length")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _report(progress: Progress | None, received: int, total: int | None) -> None:
    if progress is None:
        return
    try:
        progress(received, total)
    except Exception:  # noqa: BLE001
        logger.exception("progress callback failed")


def _close_quietly(resp: requests.Response) -> Callable[[], None]:
    def _close() -> None:
        try:
            resp.close()
        except Exception:  # noqa: BLE001
            logger.debug("response close failed", exc_info=True)

    return _close


# ---------------------------
# Public API
# ---------------------------


class Downloader:
    """
    Streaming HTTP GET with a per-attempt timeout and a bounded retry budget.

    Retry policy:
      - Only TransientNetworkError (HTTP 504/408, socket timeout, streaming deadline)
        triggers another attempt, up to `timeout_attempts` attempts in total.
      - Anything else aborts at once.

    Cancellation:
      - checked before the first attempt, after each attempt and between chunks;
      - a token callback closes the live response so a blocked read returns;
      - the callback can only be attached once `requests.get` has returned the
        response headers, so a cancel during connect or while waiting for headers
        takes effect when they arrive (at most `timeout_s` later). The attempt is
        then discarded without reading the body.

    Progress:
      - `progress(received, total)` runs after every chunk; `total` comes from
        Content-Length. A retry starts counting from zero again.
    """

    def __init__(
        self,
        *,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        timeout_attempts: int = _DEFAULT_ATTEMPTS,
        user_agent: str = _DEFAULT_UA,
        chunk_size: int = _DEFAULT_CHUNK,
    ) -> None:
        if timeout_s <= 0:
            raise InputError(f"timeout_s must be > 0, got {timeout_s}")
        if timeout_attempts < 1:
            raise InputError(f"timeout_attempts must be >= 1, got {timeout_attempts}")
        if chunk_size <= 0:
            raise InputError(f"chunk_size must be > 0, got {chunk_size}")

        self.timeout_s = float(timeout_s)
        self.timeout_attempts = int(timeout_attempts)
        self.user_agent = user_agent
        self.chunk_size = int(chunk_size)

    @classmethod
    def from_settings(cls, settings: LoaderSettings) -> Downloader:
        return cls(
            timeout_s=settings.timeout_s,
            timeout_attempts=settings.timeout_attempts,
            user_agent=settings.user_agent,
            chunk_size=settings.chunk_size,
        )

    def download(
        self, url: str, token: CancellationToken | None = None, *, progress: Progress | None = None
    ) -> bytes:
        """Bytes for `url`; empty when cancelled or failed (check the token to tell which)."""
        return self.fetch(url, token, progress=progress).data

    def fetch(
        self, url: str, token: CancellationToken | None = None, *, progress: Progress | None = None
    ) -> DownloadResult:
        if not url:
            raise InputError("url is empty")
        token = ensure_token(token)

        if token.cancelled:
            return DownloadResult(url=url, cancelled=True)

        attempts = 0
        last_error: str | None = None
        while attempts < self.timeout_attempts:
            attempts += 1
            try:
                status, data = self._attempt(url, token, progress)
            except OperationCancelledError:
                return DownloadResult(url=url, attempts=attempts, cancelled=True)
            except TransientNetworkError as e:
                if token.cancelled:
                    return DownloadResult(url=url, attempts=attempts, cancelled=True)
                last_error = str(e)
                logger.warning("transient failure for %s (attempt %d/%d): %s", url, attempts, self.timeout_attempts, e)
                continue
            except PermanentNetworkError as e:
                if token.cancelled:
                    return DownloadResult(url=url, attempts=attempts, cancelled=True)
                logger.warning("fetch failed for %s: %s", url, e)
                return DownloadResult(url=url, attempts=attempts, error=str(e))

            if token.cancelled:
                return DownloadResult(url=url, status_code=status, attempts=attempts, cancelled=True)
            if not data:
                logger.warning("empty payload for %s (HTTP %d)", url, status)
                return DownloadResult(url=url, status_code=status, attempts=attempts, error="empty payload")

            logger.debug("fetched %s: %d bytes in %d attempt(s)", url, len(data), attempts)
            return DownloadResult(url=url, data=data, status_code=status, attempts=attempts)

        logger.warning("giving up on %s after %d attempt(s)", url, attempts)
        return DownloadResult(url=url, attempts=attempts, error=f"gave up after {attempts} attempts: {last_error}")

    # ---------------------------
    # Internals
    # ---------------------------

    def _attempt(self, url: str, token: CancellationToken, progress: Progress | None) -> tuple[int, bytes]:
        with network_error_guard():
            resp = requests.get(
                url,
                headers=_headers_for(self.user_agent),
                timeout=self.timeout_s,
                stream=True,
            )

        close = _close_quietly(resp)
        unregister = token.register(close)
        try:
            # cancelled while connecting: drop the response before touching the body
            token.raise_if_cancelled()
            status = int(resp.status_code)
            status_error = classify_status(status)
            if status_error is not None:
                raise status_error

            total = _content_length(resp)
            deadline = time.monotonic() + self.timeout_s
            buf = bytearray()
            try:
                with network_error_guard():
                    for chunk in resp.iter_content(chunk_size=self.chunk_size):
                        token.raise_if_cancelled()
                        if chunk:
                            buf.extend(chunk)
                            _report(progress, len(buf), total)
                        if time.monotonic() > deadline:
                            raise TransientNetworkError(f"attempt exceeded {self.timeout_s:.1f}s")
            except PermanentNetworkError:
                # closing the response from the token callback surfaces here
                token.raise_if_cancelled()
                raise

            token.raise_if_cancelled()
            return status, bytes(buf)
        finally:
            unregister()
            close()


__all__ = ["Downloader", "DownloadResult", "Fetcher", "Progress"]
