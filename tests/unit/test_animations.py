# tests/unit/test_animations.py
from __future__ import annotations

import pytest

from picloader.core.process.animations import Animation, TickerAnimation
from tests.utils import wait_until


def test_ticker_runs_until_disposed() -> None:
    seen: list[float] = []
    stops: list[int] = []
    anim = TickerAnimation(seen.append, frame_s=0.001, on_stop=lambda: stops.append(1))
    assert isinstance(anim, Animation)

    anim.play()
    assert wait_until(lambda: anim.frames >= 3)
    assert anim.playing

    anim.dispose()
    frames = anim.frames
    anim.dispose()

    assert anim.disposed
    assert not anim.playing
    assert stops == [1]
    assert anim.frames == frames
    assert seen == sorted(seen)


def test_ticker_with_duration_ends_on_exact_value() -> None:
    seen: list[float] = []
    anim = TickerAnimation(seen.append, frame_s=0.001, duration_s=0.02)
    anim.play()
    assert wait_until(lambda: bool(seen) and seen[-1] == 0.02)
    anim.dispose()
    assert seen[-1] == 0.02


def test_dispose_before_play_never_starts() -> None:
    seen: list[float] = []
    anim = TickerAnimation(seen.append)
    anim.dispose()
    anim.play()
    assert not anim.playing
    assert seen == []


def test_frame_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TickerAnimation(lambda _: None, frame_s=0)
