# picloader/core/cache/__init__.py
from .fingerprint import Fingerprint, fingerprint, get_fingerprint, md5_fingerprint, sha256_fingerprint
from .local import LocalContentCache

__all__ = [
    "Fingerprint",
    "fingerprint",
    "get_fingerprint",
    "md5_fingerprint",
    "sha256_fingerprint",
    "LocalContentCache",
]
