# tests/conftest.py
from __future__ import annotations

import threading
from pathlib import Path

import pytest

from picloader.core.cache.local import LocalContentCache
from picloader.core.preload.scheduler import PreloadScheduler
from picloader.core.process.loader import PictureLoader
from tests.utils import Recorder, StubDownloader, png_bytes as _make_png


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for name in (
        "PICLOADER_CACHE_DIR",
        "PICLOADER_MAX_PARALLEL",
        "PICLOADER_TIMEOUT_S",
        "PICLOADER_TIMEOUT_ATTEMPTS",
        "PICLOADER_USER_AGENT",
        "PICLOADER_MAX_WORKERS",
        "PICLOADER_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


# -------- Storage --------
@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def cache(cache_dir: Path) -> LocalContentCache:
    return LocalContentCache(cache_dir)


# -------- Fetch doubles --------
@pytest.fixture
def gate() -> threading.Event:
    """Event that holds every StubDownloader download until set."""
    ev = threading.Event()
    yield ev
    ev.set()


@pytest.fixture
def stub_downloader() -> StubDownloader:
    return StubDownloader()


@pytest.fixture
def gated_downloader(gate: threading.Event) -> StubDownloader:
    return StubDownloader(gate=gate)


# -------- Scheduler / loader factories --------
@pytest.fixture
def make_scheduler(cache: LocalContentCache):
    """
    Factory for schedulers over the per-test cache; every scheduler is shut down
    at teardown.

    Usage:
        sched = make_scheduler(StubDownloader(), max_parallel=2)
    """
    created: list[PreloadScheduler] = []

    def _factory(downloader, **kwargs) -> PreloadScheduler:
        sched = PreloadScheduler(cache, downloader, **kwargs)
        created.append(sched)
        return sched

    yield _factory
    for sched in created:
        sched.shutdown(wait=True)


@pytest.fixture
def make_loader(make_scheduler):
    def _factory(downloader, **kwargs) -> PictureLoader:
        return PictureLoader(make_scheduler(downloader, **kwargs))

    return _factory


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def png_bytes():
    """
    Fixture that returns a callable to generate PNG bytes with low compression.
    Usage:
        data = png_bytes(64, 64)
    """
    return _make_png


# -------- Pytest markers --------
def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks integration tests")
