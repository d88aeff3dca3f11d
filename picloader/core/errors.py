# picloader/core/errors.py
"""
Typed errors + utilities shared by the cache, fetcher and scheduler.

Exports
-------
- PicLoaderError, InputError, NotFoundError, StorageError,
  NetworkError, TransientNetworkError, PermanentNetworkError,
  OperationCancelledError
- NETWORK_ERRORS
- TRANSIENT_STATUS_CODES
- classify_network_error(exc)
- network_error_guard()
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import requests

# =========================
# Exception types
# =========================


class PicLoaderError(RuntimeError):
    """Base class for picloader failures."""


class InputError(PicLoaderError, ValueError):
    """Empty key/URL, missing collaborator or invalid configuration."""


class NotFoundError(PicLoaderError, KeyError):
    """Direct cache read of a key that has no entry."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class StorageError(PicLoaderError):
    """Local I/O failure while reading or mutating the cache."""


class NetworkError(PicLoaderError):
    """HTTP/transport failure while attempting to fetch a resource."""


class TransientNetworkError(NetworkError):
    """Timeout or gateway-timeout; eligible for another attempt."""


class PermanentNetworkError(NetworkError):
    """Any other network failure; never retried."""


class OperationCancelledError(PicLoaderError):
    """The operation observed a cancelled token."""


# Selector tuple for grouped exception handling
NETWORK_ERRORS = (
    TransientNetworkError,
    PermanentNetworkError,
    OperationCancelledError,
)

# Gateway timeout + request timeout
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 504})

# =========================
# Classification helpers
# =========================


def classify_network_error(exc: Exception) -> NetworkError | OperationCancelledError:
    """
    Map arbitrary exceptions raised while talking to the network to a typed error.

    Heuristics:
      - Already ours → passed through
      - requests.Timeout (connect or read) → TransientNetworkError
      - any other requests.RequestException → PermanentNetworkError
      - Fallback → PermanentNetworkError
    """
    if isinstance(exc, (NetworkError, OperationCancelledError)):
        return exc

    # ConnectTimeout is both a Timeout and a ConnectionError; Timeout wins
    if isinstance(exc, requests.Timeout):
        return TransientNetworkError(str(exc))
    if isinstance(exc, requests.RequestException):
        return PermanentNetworkError(str(exc))

    return PermanentNetworkError(f"{type(exc).__name__}: {exc}")


def classify_status(status_code: int) -> NetworkError | None:
    """Return the typed error for an HTTP status, or None when it is a success."""
    if status_code in TRANSIENT_STATUS_CODES:
        return TransientNetworkError(f"HTTP {status_code}")
    if status_code >= 400:
        return PermanentNetworkError(f"HTTP {status_code}")
    return None


@contextmanager
def network_error_guard() -> Iterator[None]:
    """Context manager to normalize unexpected exceptions from HTTP internals."""
    try:
        yield
    except NETWORK_ERRORS:
        raise
    except Exception as exc:  # noqa: BLE001
        raise classify_network_error(exc) from exc


__all__ = [
    "PicLoaderError",
    "InputError",
    "NotFoundError",
    "StorageError",
    "NetworkError",
    "TransientNetworkError",
    "PermanentNetworkError",
    "OperationCancelledError",
    "NETWORK_ERRORS",
    "TRANSIENT_STATUS_CODES",
    "classify_network_error",
    "classify_status",
    "network_error_guard",
]
