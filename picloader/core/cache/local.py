# picloader/core/cache/local.py
"""
Content-addressed byte store on the local filesystem.

Layout (flat, under root/):
  - <FINGERPRINT>          raw payload bytes, no extension, no sidecar
  - <FINGERPRINT>.part-*   in-progress write (renamed into place when complete)

Existence implies validity: there is no TTL and no metadata. Mutations (write,
remove, clear) never raise on I/O failure; the entry is an optimization and a
miss is always recoverable by fetching again.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from picloader.core.cancel import CancellationToken
from picloader.core.errors import InputError, NotFoundError, StorageError

from .fingerprint import Fingerprint, md5_fingerprint

logger = logging.getLogger(__name__)

_PART_MARK = ".part-"


def _check(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


def _require_key(key: str) -> None:
    if not key:
        raise InputError("cache key is empty")


class LocalContentCache:
    """
    Byte store keyed by Fingerprint(key).

    Every method takes an optional cancellation token; an already-cancelled token
    raises OperationCancelledError before storage is touched.
    """

    def __init__(self, root: str | Path, fingerprint: Fingerprint | None = md5_fingerprint) -> None:
        if root is None or str(root).strip() == "":
            raise InputError("cache root path is empty")
        if fingerprint is None:
            raise InputError("fingerprint function is missing")

        self._root = Path(root)
        self._fingerprint = fingerprint
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InputError(f"cache root cannot be created: {self._root} ({e})") from e

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        _require_key(key)
        return self._root / self._fingerprint(key)

    # ----------------------------
    # Reads
    # ----------------------------

    def contains(self, key: str, token: CancellationToken | None = None) -> bool:
        _check(token)
        return self.path_for(key).is_file()

    def get(self, key: str, token: CancellationToken | None = None) -> bytes:
        """
        Read the entry for `key`.

        Raises NotFoundError when there is no entry and StorageError on any
        other I/O failure.
        """
        _check(token)
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"no cache entry for {key!r} ({path.name})") from e
        except IsADirectoryError as e:
            raise StorageError(f"cache entry is a directory: {path}") from e
        except OSError as e:
            raise StorageError(f"failed to read cache entry {path}: {e}") from e

    # ----------------------------
    # Mutations (log + swallow I/O failures)
    # ----------------------------

    def write(self, data: bytes, key: str, token: CancellationToken | None = None) -> bool:
        """Store `data` under `key`. Last write wins. Returns False when the write failed."""
        _check(token)
        final_path = self.path_for(key)

        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                prefix=final_path.name + _PART_MARK, delete=False, dir=str(self._root)
            ) as tf:
                tmp_path = Path(tf.name)
                tf.write(bytes(data))
            os.replace(tmp_path, final_path)
            tmp_path = None
            logger.debug("cache write: %s (%d bytes)", final_path.name, len(data))
            return True
        except OSError as e:
            logger.warning("cache write failed for %s: %s", final_path.name, e)
            return False
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink(missing_ok=True)
                except OSError:
                    logger.warning("failed to cleanup temp file: %s", tmp_path)

    def remove(self, key: str, token: CancellationToken | None = None) -> bool:
        """Delete the entry for `key`. An absent entry is not an error."""
        _check(token)
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.warning("cache remove failed for %s: %s", path.name, e)
            return False

    def clear(self, token: CancellationToken | None = None) -> int:
        """Delete every entry (and stray partial writes). Returns the number of files removed."""
        _check(token)
        removed = 0
        try:
            children = list(self._root.iterdir())
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning("cache clear failed to list %s: %s", self._root, e)
            return 0

        for p in children:
            _check(token)
            if not p.is_file():
                continue
            try:
                p.unlink(missing_ok=True)
                removed += 1
            except OSError as e:
                logger.warning("cache clear failed for %s: %s", p.name, e)

        logger.info("cache cleared: %s (%d entries)", self._root, removed)
        return removed

    # ----------------------------
    # Inspection
    # ----------------------------

    def fingerprints(self) -> Iterator[str]:
        """Names of the committed entries (partial writes excluded)."""
        if not self._root.exists():
            return
        for p in sorted(self._root.iterdir()):
            if p.is_file() and _PART_MARK not in p.name:
                yield p.name

    def total_bytes(self) -> int:
        total = 0
        for name in self.fingerprints():
            try:
                total += (self._root / name).stat().st_size
            except OSError:
                continue
        return total

    def __repr__(self) -> str:
        return f"LocalContentCache(root={str(self._root)!r})"


__all__ = ["LocalContentCache"]
