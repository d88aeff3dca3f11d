# picloader/core/media/decode.py
"""
Decoders turn fetched bytes into whatever the consumer displays.

The scheduler only needs `Callable[[bytes], T | None]`; returning None means
"nothing to deliver".
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from io import BytesIO
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

logger = logging.getLogger(__name__)

T = TypeVar("T")
Decoder = Callable[[bytes], "T | None"]


def raw_bytes(data: bytes) -> bytes | None:
    return data or None


def pil_image(data: bytes) -> PILImage | None:
    """Decode with Pillow; undecodable payloads yield None."""
    if not data:
        return None
    try:
        from PIL import Image

        im = Image.open(BytesIO(data))
        im.load()
        return im
    except Exception as e:
        logger.warning("image decode failed (%d bytes): %s: %s", len(data), type(e).__name__, e)
        return None


__all__ = ["Decoder", "raw_bytes", "pil_image"]
