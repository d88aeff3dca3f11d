# picloader/core/preload/scheduler.py
"""
Bounded-concurrency preloader with in-flight de-duplication.

Per key:   ABSENT --first touch on miss--> FETCHING --write--> CACHED
                              FETCHING --failure/cancel--> ABSENT

At most one download per key runs at any time. Every caller that touches a key
while it is FETCHING (batch preload or ad-hoc `get`) attaches to the same
future; the download is only cancelled when every attached caller has given up.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from picloader.core.cache.local import LocalContentCache
from picloader.core.cancel import CancellationToken, ensure_token
from picloader.core.errors import (
    InputError,
    NotFoundError,
    OperationCancelledError,
    PicLoaderError,
    StorageError,
)
from picloader.core.fetch.downloader import Fetcher, Progress
from picloader.core.media.decode import Decoder, raw_bytes
from picloader.schemas.models import PreloadSummary, normalize_max_parallel

if TYPE_CHECKING:
    from picloader.schemas.models import LoaderSettings

logger = logging.getLogger(__name__)

# slot waits and batch completion poll the token at this interval
_POLL_S = 0.05
_DEFAULT_MAX_WORKERS = 16


class KeyState(str, Enum):
    ABSENT = "absent"
    FETCHING = "fetching"
    CACHED = "cached"


@dataclass(eq=False)
class _InFlight:
    key: str
    source: CancellationToken = field(default_factory=CancellationToken)
    future: Future[bytes | None] | None = None
    waiters: int = 0
    listeners: list[Progress] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def listen(self, progress: Progress | None) -> None:
        if progress is not None:
            with self.lock:
                self.listeners.append(progress)

    def unlisten(self, progress: Progress | None) -> None:
        if progress is None:
            return
        with self.lock:
            try:
                self.listeners.remove(progress)
            except ValueError:
                pass

    def report(self, received: int, total: int | None) -> None:
        """Fan download progress out to every attached caller."""
        with self.lock:
            listeners = list(self.listeners)
        for listener in listeners:
            try:
                listener(received, total)
            except Exception:
                logger.exception("progress listener failed for %s", self.key)


class _ParallelGate:
    """Counting gate; `limit <= 0` never blocks. Waiters poll their token."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._active = 0
        self._cond = threading.Condition()

    @property
    def active(self) -> int:
        with self._cond:
            return self._active

    def acquire(self, token: CancellationToken) -> bool:
        with self._cond:
            while self._limit > 0 and self._active >= self._limit:
                if token.cancelled:
                    return False
                self._cond.wait(_POLL_S)
            if token.cancelled:
                return False
            self._active += 1
            return True

    def release(self) -> None:
        with self._cond:
            self._active = max(0, self._active - 1)
            self._cond.notify_all()


def _settle(out: Future[Any], value: Any) -> None:
    try:
        out.set_result(value)
    except InvalidStateError:
        pass  # first outcome wins


def _resolved(value: Any) -> Future[Any]:
    out: Future[Any] = Future()
    out.set_running_or_notify_cancel()
    out.set_result(value)
    return out


class PreloadScheduler:
    """
    Ensures assets are present in the content cache, fetching only on misses.

    `get` blocks the calling thread; do not call it from inside a fetch job or a
    future callback of this scheduler (use `get_async` there).
    """

    def __init__(
        self,
        cache: LocalContentCache,
        downloader: Fetcher,
        *,
        urls: Iterable[str] = (),
        max_parallel: int = -1,
        decoder: Decoder = raw_bytes,
        max_workers: int = _DEFAULT_MAX_WORKERS,
    ) -> None:
        if cache is None:
            raise InputError("content cache is missing")
        if downloader is None:
            raise InputError("downloader is missing")
        if decoder is None:
            raise InputError("decoder is missing")

        self._cache = cache
        self._downloader = downloader
        self._decoder = decoder
        self._max_parallel = normalize_max_parallel(max_parallel)
        # one gate per scheduler: concurrent batches share the cap
        self._gate = _ParallelGate(self._max_parallel)
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="picloader-fetch")

        self._lock = threading.Lock()
        self._inflight: dict[str, _InFlight] = {}
        self._uncached: set[CancellationToken] = set()
        self._links: dict[str, None] = dict.fromkeys(u for u in (urls or ()) if u)
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: LoaderSettings,
        *,
        urls: Iterable[str] = (),
        decoder: Decoder = raw_bytes,
        cache: LocalContentCache | None = None,
        downloader: Fetcher | None = None,
    ) -> PreloadScheduler:
        from picloader.core.cache.fingerprint import get_fingerprint
        from picloader.core.fetch.downloader import Downloader

        return cls(
            cache or LocalContentCache(settings.cache_dir, get_fingerprint(settings.fingerprint)),
            downloader or Downloader.from_settings(settings),
            urls=urls,
            max_parallel=settings.max_parallel,
            decoder=decoder,
            max_workers=settings.max_workers,
        )

    # ----------------------------
    # Introspection
    # ----------------------------

    @property
    def cache(self) -> LocalContentCache:
        return self._cache

    @property
    def max_parallel(self) -> int:
        return self._max_parallel

    @property
    def urls(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._links)

    def state(self, url: str) -> KeyState:
        with self._lock:
            if url in self._inflight:
                return KeyState.FETCHING
        return KeyState.CACHED if self._cache.contains(url) else KeyState.ABSENT

    def in_flight(self) -> dict[str, int]:
        """Waiter count per key currently being fetched."""
        with self._lock:
            return {k: e.waiters for k, e in self._inflight.items()}

    # ----------------------------
    # Public API
    # ----------------------------

    def get_async(
        self,
        url: str,
        preload: bool = True,
        token: CancellationToken | None = None,
        progress: Progress | None = None,
    ) -> Future[Any]:
        """
        Future resolving to the decoded asset, or None when nothing was produced
        (fetch failure, empty payload, undecodable bytes, cancellation).

        preload=True:  cache hit → read; miss → attach to / start the shared fetch,
                       which writes the cache.
        preload=False: private fetch; the cache is neither read nor written.

        `progress(received, total)` is called from the fetch thread while bytes
        arrive; it is never called on a cache hit.
        """
        if token is not None and token.cancelled:
            return _resolved(None)
        if not url:
            raise InputError("url is empty")
        token = ensure_token(token)

        if not preload:
            return self._get_fresh(url, token, progress)

        self._remember(url)
        # second round covers an entry removed between the attach recheck and the read
        for _ in range(2):
            try:
                found, asset = self._read_cached(url, token)
            except OperationCancelledError:
                return _resolved(None)
            if found:
                return _resolved(asset)

            attached = self._attach(url, progress)
            if attached is None:
                continue

            entry, job = attached
            out: Future[Any] = Future()
            out.set_running_or_notify_cancel()
            self._bind(url, job, out, token, on_cancel=lambda e=entry: self._detach(e, progress))
            return out

        return _resolved(None)

    def get(
        self,
        url: str,
        preload: bool = True,
        token: CancellationToken | None = None,
        progress: Progress | None = None,
    ) -> Any:
        """Blocking form of `get_async`."""
        return self.get_async(url, preload, token, progress).result()

    def preload(self, urls: Iterable[str] | None = None, token: CancellationToken | None = None) -> PreloadSummary:
        """
        Make sure every URL is cached. URLs are dispatched in order; completion
        order is unspecified. The `max_parallel` cap is shared by every batch
        running on this scheduler.

        Waits for every started fetch unless the token is cancelled, in which case
        dispatch stops, the batch's interest in running fetches is dropped and the
        call returns at once.
        """
        token = ensure_token(token)
        batch = list(self.urls) if urls is None else list(urls)
        if token.cancelled:
            return PreloadSummary(cancelled=True)

        gate = self._gate
        done_cond = threading.Condition()
        counts = {"skipped": 0, "fetched": 0, "failed": 0}
        outstanding = 0
        attached: list[_InFlight] = []
        requested = 0
        cancelled = False

        def _on_done(f: Future[bytes | None]) -> None:
            nonlocal outstanding
            gate.release()
            ok = not f.cancelled() and f.exception() is None and bool(f.result())
            with done_cond:
                counts["fetched" if ok else "failed"] += 1
                outstanding -= 1
                done_cond.notify_all()

        for url in batch:
            if token.cancelled:
                cancelled = True
                break
            if not url:
                logger.warning("skipping empty url in preload batch")
                continue

            requested += 1
            self._remember(url)
            try:
                if self._cache.contains(url, token):
                    counts["skipped"] += 1
                    continue
            except OperationCancelledError:
                cancelled = True
                break

            if not gate.acquire(token):
                cancelled = True
                break

            try:
                joined = self._attach(url)
            except PicLoaderError:
                gate.release()
                raise
            if joined is None:
                gate.release()
                counts["skipped"] += 1
                continue

            entry, job = joined
            attached.append(entry)
            with done_cond:
                outstanding += 1
            job.add_done_callback(_on_done)

        if not cancelled:
            with done_cond:
                while outstanding > 0:
                    if token.cancelled:
                        cancelled = True
                        break
                    done_cond.wait(_POLL_S)

        if cancelled:
            for entry in attached:
                self._detach(entry)

        with done_cond:
            summary = PreloadSummary(requested=requested, cancelled=cancelled, **counts)
        logger.info(
            "preload: requested=%d skipped=%d fetched=%d failed=%d cancelled=%s",
            summary.requested,
            summary.skipped,
            summary.fetched,
            summary.failed,
            summary.cancelled,
        )
        return summary

    def unload(self, urls: Iterable[str] | None = None, token: CancellationToken | None = None) -> int:
        """Best-effort removal of cache entries. Returns how many URLs were unloaded."""
        token = ensure_token(token)
        batch = list(self.urls) if urls is None else list(urls)
        unloaded = 0
        for url in batch:
            if token.cancelled:
                break
            if not url:
                continue
            try:
                if self._cache.remove(url, token):
                    unloaded += 1
            except OperationCancelledError:
                break
            self._forget(url)
        return unloaded

    def clear(self, token: CancellationToken | None = None) -> int:
        try:
            removed = self._cache.clear(token)
        except OperationCancelledError:
            return 0
        with self._lock:
            self._links.clear()
        return removed

    def shutdown(self, wait: bool = False) -> None:
        """Cancel every in-flight fetch and stop the worker pool."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sources = [e.source for e in self._inflight.values()] + list(self._uncached)
            self._inflight.clear()
            self._uncached.clear()

        for source in sources:
            source.cancel()
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> PreloadScheduler:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown(wait=True)

    # ----------------------------
    # Internals
    # ----------------------------

    def _remember(self, url: str) -> None:
        with self._lock:
            self._links.setdefault(url, None)

    def _forget(self, url: str) -> None:
        with self._lock:
            self._links.pop(url, None)

    def _read_cached(self, url: str, token: CancellationToken) -> tuple[bool, Any]:
        if not self._cache.contains(url, token):
            return False, None
        try:
            data = self._cache.get(url, token)
        except NotFoundError:
            return False, None
        except StorageError as e:
            logger.warning("cache read failed for %s, refetching: %s", url, e)
            return False, None
        return True, self._decode(url, data)

    def _attach(
        self, url: str, progress: Progress | None = None
    ) -> tuple[_InFlight, Future[bytes | None]] | None:
        """Join the running fetch for `url` or start one. None when the key is already cached."""
        with self._lock:
            if self._closed:
                raise PicLoaderError("scheduler is shut down")

            entry = self._inflight.get(url)
            if entry is not None and entry.future is not None:
                entry.waiters += 1
                entry.listen(progress)
                return entry, entry.future

            # a fetch for this key may have completed since the caller's miss
            if self._cache.contains(url):
                return None

            entry = _InFlight(key=url, waiters=1)
            entry.listen(progress)
            self._inflight[url] = entry
            job = self._executor.submit(self._fetch_and_store, entry)
            entry.future = job
            logger.debug("fetch started: %s", url)
            return entry, job

    def _detach(self, entry: _InFlight, progress: Progress | None = None) -> None:
        entry.unlisten(progress)
        with self._lock:
            entry.waiters = max(0, entry.waiters - 1)
            if entry.waiters > 0 or (entry.future is not None and entry.future.done()):
                return
            if self._inflight.get(entry.key) is entry:
                del self._inflight[entry.key]
        logger.debug("fetch abandoned by all waiters: %s", entry.key)
        entry.source.cancel()

    def _fetch_and_store(self, entry: _InFlight) -> bytes | None:
        try:
            data = self._downloader.download(entry.key, entry.source, progress=entry.report)
            if entry.source.cancelled or not data:
                return None
            self._cache.write(data, entry.key, entry.source)
            return data
        except OperationCancelledError:
            return None
        except Exception:
            logger.exception("fetch job failed for %s", entry.key)
            return None
        finally:
            # drop the entry before the future resolves: later callers see the cache
            with self._lock:
                if self._inflight.get(entry.key) is entry:
                    del self._inflight[entry.key]

    def _fetch_only(self, url: str, source: CancellationToken, progress: Progress | None) -> bytes | None:
        try:
            data = self._downloader.download(url, source, progress=progress)
        except Exception:
            logger.exception("uncached fetch failed for %s", url)
            return None
        if source.cancelled or not data:
            return None
        return data

    def _drop_uncached(self, source: CancellationToken) -> None:
        with self._lock:
            self._uncached.discard(source)

    def _get_fresh(self, url: str, token: CancellationToken, progress: Progress | None = None) -> Future[Any]:
        with self._lock:
            if self._closed:
                raise PicLoaderError("scheduler is shut down")
            source = CancellationToken()
            self._uncached.add(source)
            job = self._executor.submit(self._fetch_only, url, source, progress)
        job.add_done_callback(lambda _f: self._drop_uncached(source))

        out: Future[Any] = Future()
        out.set_running_or_notify_cancel()
        self._bind(url, job, out, token, on_cancel=source.cancel)
        return out

    def _bind(
        self,
        url: str,
        job: Future[bytes | None],
        out: Future[Any],
        token: CancellationToken,
        *,
        on_cancel: Callable[[], None],
    ) -> None:
        """Resolve `out` from `job`, or with None as soon as the caller's token is cancelled."""

        def _cancelled() -> None:
            on_cancel()
            _settle(out, None)

        unregister = token.register(_cancelled)

        def _done(f: Future[bytes | None]) -> None:
            unregister()
            if token.cancelled:
                _settle(out, None)
                return
            data = None if f.cancelled() or f.exception() is not None else f.result()
            _settle(out, self._decode(url, data))

        job.add_done_callback(_done)

    def _decode(self, url: str, data: bytes | None) -> Any:
        if not data:
            return None
        try:
            return self._decoder(data)
        except Exception:
            logger.exception("decoder failed for %s", url or "<asset>")
            return None


__all__ = ["KeyState", "PreloadScheduler"]
