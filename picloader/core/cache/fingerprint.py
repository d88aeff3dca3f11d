# picloader/core/cache/fingerprint.py
"""
Deterministic content addressing: URL -> fixed-length uppercase hex storage key.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable

from picloader.core.errors import InputError

Fingerprint = Callable[[str], str]


def _digest(key: str, algorithm: str) -> str:
    if not isinstance(key, str):
        raise InputError(f"fingerprint key must be a str, got {type(key).__name__}")
    h = hashlib.new(algorithm)
    h.update(key.encode("utf-8"))
    return h.hexdigest().upper()


def md5_fingerprint(key: str) -> str:
    return _digest(key, "md5")


def sha256_fingerprint(key: str) -> str:
    return _digest(key, "sha256")


_ALGORITHMS: dict[str, Fingerprint] = {
    "md5": md5_fingerprint,
    "sha256": sha256_fingerprint,
}


def fingerprint(key: str, algorithm: str = "md5") -> str:
    """Uppercase hex digest of `key` encoded as UTF-8 (32 chars for md5, 64 for sha256)."""
    return get_fingerprint(algorithm)(key)


def get_fingerprint(algorithm: str) -> Fingerprint:
    try:
        return _ALGORITHMS[algorithm.lower()]
    except (KeyError, AttributeError):
        raise InputError(f"unknown fingerprint algorithm: {algorithm!r}") from None


__all__ = ["Fingerprint", "fingerprint", "get_fingerprint", "md5_fingerprint", "sha256_fingerprint"]
