# picloader/core/process/process.py
"""
PictureProcess: one consumer's request for one asset.

    loader.get_process(url)
        .get_layer(forcibly)      (optional; layers share the head's fetch)
        .into(sink)               (additive; every sink fires)
        .set_wait_asset(asset)    (delivered to sinks while waiting)
        .set_error_asset(asset)   (delivered to sinks when nothing was produced)
        .add_animation(anim)      (played while waiting, disposed at the end)
        .on_progress(cb)          (received, total) while the fetch streams
        .on_error(cb)             (message) when nothing was produced
        .on_complete(cb)
        .on_dispose(cb)
        .run()

Lifecycle: CREATED -> RUNNING -> COMPLETED | DISPOSED. Terminal states never
run again. Ordering per process: placeholder, delivery (or error callbacks then
error asset), completion, disposal.

A head owns the fetch. Layers never hold the head process itself: head and
layers share a `HeadLink` carrying the head's id, its outcome and the hooks
through which the head notifies layers when it completes or is disposed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from enum import Enum
from typing import TYPE_CHECKING, Any

from picloader.core.cancel import CancellationToken
from picloader.core.errors import InputError, PicLoaderError

from .animations import Animation

if TYPE_CHECKING:
    from .loader import PictureLoader

logger = logging.getLogger(__name__)

Sink = Callable[[Any], None]
Action = Callable[[], None]
ErrorAction = Callable[[str], None]
ProgressAction = Callable[[int, int | None], None]


class ProcessState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    DISPOSED = "disposed"


class HeadLink:
    """Outcome of a head process, shared with its layers."""

    def __init__(self, head_id: int, url: str, cached: bool) -> None:
        self.head_id = head_id
        self.url = url
        self.cached = cached
        self._lock = threading.Lock()
        self._completed = False
        self._disposed = False
        self._result: Any = None
        self._hooks: list[Action] = []
        self._progress_hooks: list[ProgressAction] = []

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    @property
    def disposed(self) -> bool:
        with self._lock:
            return self._disposed

    @property
    def result(self) -> Any:
        with self._lock:
            return self._result

    def subscribe(self, hook: Action, progress: ProgressAction | None = None) -> None:
        with self._lock:
            if not (self._completed or self._disposed):
                self._hooks.append(hook)
                if progress is not None:
                    self._progress_hooks.append(progress)

    def unsubscribe(self, hook: Action, progress: ProgressAction | None = None) -> None:
        with self._lock:
            for hooks, item in ((self._hooks, hook), (self._progress_hooks, progress)):
                try:
                    hooks.remove(item)
                except ValueError:
                    pass

    def report_progress(self, received: int, total: int | None) -> None:
        """Forward the head's download progress to subscribed layers."""
        with self._lock:
            hooks = list(self._progress_hooks)
        for hook in hooks:
            _invoke(hook, received, total)

    def settle_completed(self, result: Any) -> list[Action]:
        with self._lock:
            if self._completed or self._disposed:
                return []
            self._completed = True
            self._result = result
            hooks, self._hooks = self._hooks, []
            self._progress_hooks = []
            return hooks

    def settle_disposed(self) -> list[Action]:
        """Mark the head disposed; hooks are returned only if it never completed."""
        with self._lock:
            if self._disposed:
                return []
            self._disposed = True
            hooks, self._hooks = self._hooks, []
            self._progress_hooks = []
            return [] if self._completed else hooks


def _invoke(fn: Callable[..., None], *args: Any) -> None:
    try:
        fn(*args)
    except Exception:
        logger.exception("process callback %r failed", fn)


class PictureProcess:
    """
    Builder + state machine around one `PreloadScheduler.get_async` call.

    Instances come from `PictureLoader.get_process` or `get_layer`; the loader
    owns them by id.
    """

    def __init__(self, loader: PictureLoader, pid: int, link: HeadLink) -> None:
        if loader is None:
            raise InputError("process loader is missing")
        if link is None or not link.url:
            raise InputError("url is empty")

        self._loader = loader
        self._id = pid
        self._link = link
        self._token = CancellationToken()
        self._lock = threading.RLock()
        self._settled = threading.Event()

        self._wait_sinks: list[Sink] = []
        self._sinks: list[Sink] = []
        self._complete_actions: list[Action] = []
        self._dispose_actions: list[Action] = []
        self._error_actions: list[ErrorAction] = []
        self._progress_actions: list[ProgressAction] = []
        self._animations: list[Animation] = []
        self._wait_asset: Any = None
        self._error_asset: Any = None

        self._running = False
        self._completed = False
        self._disposed = False
        self._failed = False
        self._result: Any = None

    # ----------------------------
    # Properties
    # ----------------------------

    @property
    def id(self) -> int:
        return self._id

    @property
    def url(self) -> str:
        return self._link.url

    @property
    def cached(self) -> bool:
        return self._link.cached

    @property
    def head_id(self) -> int:
        return self._link.head_id

    @property
    def link(self) -> HeadLink:
        return self._link

    @property
    def is_layer(self) -> bool:
        return self._link.head_id != self._id

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def failed(self) -> bool:
        """Completed without an asset (and not because of cancellation)."""
        return self._failed

    @property
    def result(self) -> Any:
        return self._result

    @property
    def state(self) -> ProcessState:
        with self._lock:
            if self._completed:
                return ProcessState.COMPLETED
            if self._disposed:
                return ProcessState.DISPOSED
            if self._running:
                return ProcessState.RUNNING
            return ProcessState.CREATED

    # ----------------------------
    # Builder
    # ----------------------------

    def set_target(self, sink: Sink, *, placeholder: bool = True) -> PictureProcess:
        """
        Deliver the fetched asset to `sink`. With `placeholder` the sink also
        receives the wait asset when the process starts. Registrations add up.
        """
        if sink is None:
            raise InputError("delivery sink is missing")
        with self._lock:
            if self._disposed:
                return self
            self._sinks.append(sink)
            if placeholder:
                self._wait_sinks.append(sink)
        return self

    into = set_target

    def set_wait_asset(self, asset: Any) -> PictureProcess:
        if asset is None or self._link.disposed:
            return self
        with self._lock:
            self._wait_asset = asset
        return self

    def set_error_asset(self, asset: Any) -> PictureProcess:
        if asset is None or self._link.disposed:
            return self
        with self._lock:
            self._error_asset = asset
        return self

    def add_animation(self, animation: Animation) -> PictureProcess:
        if animation is None or self._link.disposed:
            return self
        with self._lock:
            if not self._disposed:
                self._animations.append(animation)
        return self

    def on_complete(self, action: Action) -> PictureProcess:
        with self._lock:
            if action is not None and not self._disposed:
                self._complete_actions.append(action)
        return self

    def on_dispose(self, action: Action) -> PictureProcess:
        with self._lock:
            if action is not None and not self._disposed:
                self._dispose_actions.append(action)
        return self

    def on_error(self, action: ErrorAction) -> PictureProcess:
        """`action(message)` runs when the process completes without an asset."""
        with self._lock:
            if action is not None and not self._disposed:
                self._error_actions.append(action)
        return self

    def on_progress(self, action: ProgressAction) -> PictureProcess:
        """
        `action(received, total)` runs from the fetch thread for every chunk the
        head downloads; `total` is None without a Content-Length. Cache hits
        report nothing.
        """
        with self._lock:
            if action is not None and not self._disposed:
                self._progress_actions.append(action)
        return self

    def get_layer(self, forcibly: bool = False) -> PictureProcess:
        """
        A head returns itself unless `forcibly`; a layer always yields a new layer
        of the same head. Layers can be disposed without touching the head.
        """
        if not forcibly and not self.is_layer:
            return self
        return self._loader.spawn_layer(self._link)

    # ----------------------------
    # Execution
    # ----------------------------

    def run(self) -> PictureProcess:
        with self._lock:
            if self._running or self._completed or self._disposed:
                return self
            self._running = True
            wait_sinks = list(self._wait_sinks)
            wait_asset = self._wait_asset
            animations = list(self._animations)

        if wait_asset is not None:
            for sink in wait_sinks:
                _invoke(sink, wait_asset)
        for animation in animations:
            _invoke(animation.play)

        if not self.is_layer:
            self._fetch()
            return self

        if self._link.completed:
            self._complete_with(self._link.result)
        elif self._link.disposed:
            # head is gone without a result; fetch on this layer's own token
            self._fetch()
        # otherwise the head's hook resumes this layer
        return self

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the process completed or was disposed."""
        return self._settled.wait(timeout)

    def dispose(self) -> None:
        """Heads: cancel the fetch and cascade to layers. Layers: this layer only."""
        if self.is_layer:
            self.dispose_layer()
            return

        if not self._teardown():
            return
        for hook in self._link.settle_disposed():
            _invoke(hook)

    def dispose_layer(self) -> None:
        if not self.is_layer:
            return
        self._link.unsubscribe(self._on_head_settled, self._on_head_progress)
        self._teardown()

    # ----------------------------
    # Internals
    # ----------------------------

    def _fetch(self) -> None:
        try:
            future = self._loader.scheduler.get_async(
                self.url, self.cached, self._token, progress=self._report_progress
            )
        except PicLoaderError as e:
            logger.warning("process %d could not start fetching %s: %s", self._id, self.url, e)
            self.dispose()
            return
        future.add_done_callback(self._on_fetched)

    def _report_progress(self, received: int, total: int | None) -> None:
        with self._lock:
            if self._disposed:
                return
            actions = list(self._progress_actions)
        for action in actions:
            _invoke(action, received, total)
        if not self.is_layer:
            self._link.report_progress(received, total)

    def _on_head_progress(self, received: int, total: int | None) -> None:
        self._report_progress(received, total)

    def _on_fetched(self, future: Future[Any]) -> None:
        asset = None if future.cancelled() or future.exception() is not None else future.result()
        self._complete_with(asset)

    def _on_head_settled(self) -> None:
        if self._link.completed:
            with self._lock:
                waiting = self._running and not (self._completed or self._disposed)
            if waiting:
                self._complete_with(self._link.result)
            return
        self.dispose_layer()

    def _complete_with(self, asset: Any) -> None:
        with self._lock:
            if not self._running or self._completed or self._disposed:
                return
            self._completed = True
            self._running = False
            self._result = asset
            # a cancelled fetch also yields None; that is not a failure
            self._failed = asset is None and not self._token.cancelled
            failed = self._failed
            sinks = list(self._sinks)
            complete_actions = list(self._complete_actions)
            error_actions = list(self._error_actions)
            error_asset = self._error_asset

        if asset is not None:
            for sink in sinks:
                _invoke(sink, asset)
        elif failed:
            message = f"no asset produced for {self.url}"
            logger.info("process %d: %s", self._id, message)
            for error_action in error_actions:
                _invoke(error_action, message)
            if error_asset is not None:
                for sink in sinks:
                    _invoke(sink, error_asset)
        for action in complete_actions:
            _invoke(action)

        if self.is_layer:
            self.dispose_layer()
            return

        for hook in self._link.settle_completed(asset):
            _invoke(hook)
        self.dispose()

    def _teardown(self) -> bool:
        """Shared disposal: cancel, stop animations, fire and drop callbacks. False if already disposed."""
        with self._lock:
            if self._disposed:
                return False
            self._disposed = True
            self._running = False
            animations, self._animations = self._animations, []
            dispose_actions, self._dispose_actions = self._dispose_actions, []
            self._complete_actions = []
            self._error_actions = []
            self._progress_actions = []
            self._sinks = []
            self._wait_sinks = []
            self._wait_asset = None
            self._error_asset = None

        self._token.cancel()
        for animation in animations:
            _invoke(animation.dispose)
        for action in dispose_actions:
            _invoke(action)
        self._settled.set()
        return True

    def __repr__(self) -> str:
        kind = "layer" if self.is_layer else "head"
        return f"PictureProcess(id={self._id}, {kind}, url={self.url!r}, state={self.state.value})"


__all__ = ["HeadLink", "PictureProcess", "ProcessState"]
