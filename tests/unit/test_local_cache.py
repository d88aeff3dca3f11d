# tests/unit/test_local_cache.py
from __future__ import annotations

from pathlib import Path

import pytest

from picloader.core.cache.fingerprint import md5_fingerprint, sha256_fingerprint
from picloader.core.cache.local import LocalContentCache
from picloader.core.cancel import CancellationToken
from picloader.core.errors import InputError, NotFoundError, OperationCancelledError

URL = "https://cdn.example.com/a.png"


def test_entry_is_stored_under_its_fingerprint(cache: LocalContentCache, cache_dir: Path) -> None:
    assert cache.write(b"abc", URL) is True
    path = cache_dir / md5_fingerprint(URL)
    assert path.is_file()
    assert path.read_bytes() == b"abc"
    assert cache.path_for(URL) == path
    assert list(cache.fingerprints()) == [md5_fingerprint(URL)]


def test_write_is_idempotent(cache: LocalContentCache, cache_dir: Path) -> None:
    assert cache.write(b"same", URL)
    assert cache.write(b"same", URL)
    assert cache.get(URL) == b"same"
    assert [p.name for p in cache_dir.iterdir()] == [md5_fingerprint(URL)]


def test_last_write_wins_and_leaves_no_partials(cache: LocalContentCache, cache_dir: Path) -> None:
    cache.write(b"old", URL)
    cache.write(b"new", URL)
    assert cache.get(URL) == b"new"
    assert not [p for p in cache_dir.iterdir() if ".part-" in p.name]


def test_contains_and_get_miss(cache: LocalContentCache) -> None:
    assert cache.contains(URL) is False
    with pytest.raises(NotFoundError):
        cache.get(URL)
    # also catchable as KeyError
    with pytest.raises(KeyError):
        cache.get(URL)


def test_remove_is_idempotent(cache: LocalContentCache) -> None:
    cache.write(b"x", URL)
    assert cache.remove(URL) is True
    assert cache.contains(URL) is False
    assert cache.remove(URL) is True


def test_clear_counts_and_is_idempotent(cache: LocalContentCache) -> None:
    for i in range(3):
        cache.write(b"x", f"https://x/{i}")
    assert cache.total_bytes() == 3
    assert cache.clear() == 3
    assert list(cache.fingerprints()) == []
    assert cache.clear() == 0


def test_cancelled_token_touches_nothing(cache: LocalContentCache, cache_dir: Path) -> None:
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelledError):
        cache.write(b"x", URL, token)
    with pytest.raises(OperationCancelledError):
        cache.contains(URL, token)
    with pytest.raises(OperationCancelledError):
        cache.clear(token)
    assert list(cache_dir.iterdir()) == []


@pytest.mark.parametrize("op", ["contains", "get", "remove", "path_for"])
def test_empty_key_is_rejected(cache: LocalContentCache, op: str) -> None:
    with pytest.raises(InputError):
        getattr(cache, op)("")


def test_empty_key_rejected_on_write(cache: LocalContentCache) -> None:
    with pytest.raises(InputError):
        cache.write(b"x", "")


def test_write_failure_is_swallowed(monkeypatch, cache: LocalContentCache, cache_dir: Path) -> None:
    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("picloader.core.cache.local.os.replace", boom)
    assert cache.write(b"x", URL) is False
    assert cache.contains(URL) is False
    assert list(cache_dir.iterdir()) == []


def test_constructor_validation(tmp_path: Path) -> None:
    with pytest.raises(InputError):
        LocalContentCache("")
    with pytest.raises(InputError):
        LocalContentCache(tmp_path / "c", None)


def test_sha256_layout(tmp_path: Path) -> None:
    c = LocalContentCache(tmp_path / "c", sha256_fingerprint)
    c.write(b"x", URL)
    assert (tmp_path / "c" / sha256_fingerprint(URL)).is_file()
