# tests/integration/test_loader_end_to_end.py
from __future__ import annotations

import threading
from pathlib import Path

import pytest

from picloader.core.media.decode import pil_image
from picloader.core.process.animations import TickerAnimation
from picloader.core.process.loader import PictureLoader
from picloader.schemas.models import LoaderSettings
from tests.utils import WAIT_S, FakeResponse

pytestmark = pytest.mark.integration

GOOD = [f"https://cdn.example.com/{i}.png" for i in range(4)]
FLAKY = "https://cdn.example.com/flaky.png"
DOWN = "https://cdn.example.com/down.png"


@pytest.fixture
def fake_cdn(monkeypatch, png_bytes):
    """Serves PNGs for GOOD, one gateway timeout for FLAKY, and 504 forever for DOWN."""
    lock = threading.Lock()
    hits: dict[str, int] = {}

    def fake_get(url: str, *, headers: dict[str, str], timeout: float, stream: bool):
        with lock:
            hits[url] = hits.get(url, 0) + 1
            n = hits[url]
        if url == DOWN or (url == FLAKY and n == 1):
            return FakeResponse(504)
        return FakeResponse(200, png_bytes(24, 12), chunk=256)

    monkeypatch.setattr("picloader.core.fetch.downloader.requests.get", fake_get)
    return hits


def test_setup_then_processes_read_from_cache(fake_cdn, tmp_path: Path) -> None:
    settings = LoaderSettings(cache_dir=tmp_path / "cache", max_parallel=2, timeout_attempts=3)
    urls = [*GOOD, FLAKY, DOWN]

    with PictureLoader.from_settings(settings, urls=urls, decoder=pil_image) as loader:
        summary = loader.setup()
        assert (summary.requested, summary.fetched, summary.failed) == (6, 5, 1)
        assert fake_cdn[FLAKY] == 2
        assert fake_cdn[DOWN] == 3

        delivered: list[tuple[int, int]] = []
        frames: list[float] = []
        procs = [
            loader.get_process(u)
            .set_wait_asset("loading")
            .into(lambda img: delivered.append(getattr(img, "size", None)))
            .add_animation(TickerAnimation(frames.append, frame_s=0.001))
            .run()
            for u in GOOD
        ]
        assert all(p.wait(WAIT_S) for p in procs)

        assert delivered.count((24, 12)) == len(GOOD)
        assert delivered.count(None) == len(GOOD)  # placeholders have no size
        assert all(fake_cdn[u] == 1 for u in GOOD)

        down = loader.get_process(DOWN).run()
        assert down.wait(WAIT_S)
        assert down.result is None

        assert loader.unload(GOOD[:2]) == 2
        assert loader.clear() == 3
