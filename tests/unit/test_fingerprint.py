# tests/unit/test_fingerprint.py
from __future__ import annotations

import hashlib

import pytest

from picloader.core.cache.fingerprint import fingerprint, get_fingerprint, md5_fingerprint, sha256_fingerprint
from picloader.core.errors import InputError


def test_md5_of_empty_string_is_uppercase_hex() -> None:
    assert md5_fingerprint("") == "D41D8CD98F00B204E9800998ECF8427E"


def test_fingerprint_is_deterministic_and_fixed_length() -> None:
    url = "https://cdn.example.com/pics/a.png?w=640"
    first = fingerprint(url)
    assert first == fingerprint(url)
    assert len(first) == 32
    assert first == first.upper()
    assert first == hashlib.md5(url.encode("utf-8")).hexdigest().upper()


def test_distinct_keys_give_distinct_fingerprints() -> None:
    keys = [f"https://x/{i}.png" for i in range(50)]
    assert len({fingerprint(k) for k in keys}) == len(keys)


def test_sha256_variant() -> None:
    fp = sha256_fingerprint("https://x/a.png")
    assert len(fp) == 64
    assert fingerprint("https://x/a.png", "SHA256") == fp


def test_non_ascii_keys_hash_their_utf8_bytes() -> None:
    key = "https://exemple.fr/façade/été.jpg"
    assert md5_fingerprint(key) == hashlib.md5(key.encode("utf-8")).hexdigest().upper()


@pytest.mark.parametrize("bad", [None, b"https://x/a.png", 42])
def test_non_str_key_rejected(bad) -> None:
    with pytest.raises(InputError):
        md5_fingerprint(bad)  # type: ignore[arg-type]


def test_unknown_algorithm_rejected() -> None:
    with pytest.raises(InputError):
        get_fingerprint("crc32")
