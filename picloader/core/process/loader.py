# picloader/core/process/loader.py
"""
PictureLoader: facade over one PreloadScheduler plus the process arena.

The arena maps process id -> PictureProcess and url -> live head id. A second
`get_process` for a url whose head is still alive yields a layer of that head,
so consumers of the same picture share one fetch.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Iterable
from typing import Any

from picloader.core.cancel import CancellationToken
from picloader.core.errors import InputError
from picloader.core.media.decode import Decoder, raw_bytes
from picloader.core.preload.scheduler import PreloadScheduler
from picloader.schemas.models import LoaderSettings, PreloadSummary

from .process import HeadLink, PictureProcess

logger = logging.getLogger(__name__)


class PictureLoader:
    def __init__(self, scheduler: PreloadScheduler) -> None:
        if scheduler is None:
            raise InputError("scheduler is missing")
        self._scheduler = scheduler
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._processes: dict[int, PictureProcess] = {}
        self._heads: dict[str, int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: LoaderSettings | None = None,
        *,
        urls: Iterable[str] = (),
        decoder: Decoder = raw_bytes,
    ) -> PictureLoader:
        settings = settings or LoaderSettings.from_env()
        return cls(PreloadScheduler.from_settings(settings, urls=urls, decoder=decoder))

    @property
    def scheduler(self) -> PreloadScheduler:
        return self._scheduler

    # ----------------------------
    # Processes
    # ----------------------------

    def get_process(self, url: str, cached: bool = True) -> PictureProcess:
        """Head process for `url`, or a new layer when a head for it is still alive."""
        if not url:
            raise InputError("url is empty")
        with self._lock:
            head_id = self._heads.get(url)
            head = self._processes.get(head_id) if head_id is not None else None
            if head is not None and not head.disposed:
                return self.spawn_layer(head.link)

            pid = next(self._ids)
            process = PictureProcess(self, pid, HeadLink(pid, url, cached))
            self._register(process)
            self._heads[url] = pid
            logger.debug("process %d: head for %s", pid, url)
            return process

    def spawn_layer(self, link: HeadLink) -> PictureProcess:
        """New layer sharing `link`; used by `PictureProcess.get_layer`."""
        with self._lock:
            pid = next(self._ids)
            layer = PictureProcess(self, pid, link)
            self._register(layer)
        link.subscribe(layer._on_head_settled, layer._on_head_progress)
        logger.debug("process %d: layer of %d", pid, link.head_id)
        return layer

    def process(self, pid: int) -> PictureProcess | None:
        with self._lock:
            return self._processes.get(pid)

    def processes(self) -> list[PictureProcess]:
        """Live processes in creation order."""
        with self._lock:
            return list(self._processes.values())

    def _register(self, process: PictureProcess) -> None:
        self._processes[process.id] = process
        process.on_dispose(lambda pid=process.id, url=process.url: self._release(pid, url))

    def _release(self, pid: int, url: str) -> None:
        with self._lock:
            self._processes.pop(pid, None)
            if self._heads.get(url) == pid:
                del self._heads[url]

    # ----------------------------
    # Scheduler pass-throughs
    # ----------------------------

    def setup(self, urls: Iterable[str] | None = None, token: CancellationToken | None = None) -> PreloadSummary:
        """Preload the configured (or given) URLs into the cache."""
        return self._scheduler.preload(urls, token)

    def preload(self, urls: Iterable[str] | None = None, token: CancellationToken | None = None) -> PreloadSummary:
        return self._scheduler.preload(urls, token)

    def get(self, url: str, cached: bool = True, token: CancellationToken | None = None) -> Any:
        return self._scheduler.get(url, cached, token)

    def unload(self, urls: Iterable[str] | None = None, token: CancellationToken | None = None) -> int:
        return self._scheduler.unload(urls, token)

    def clear(self, token: CancellationToken | None = None) -> int:
        return self._scheduler.clear(token)

    def shutdown(self, wait: bool = False) -> None:
        """Dispose every live process, then stop the scheduler."""
        for process in self.processes():
            process.dispose()
        self._scheduler.shutdown(wait=wait)

    def __enter__(self) -> PictureLoader:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown(wait=True)


__all__ = ["PictureLoader"]
