# picloader/core/media/__init__.py
from .decode import Decoder, pil_image, raw_bytes

__all__ = ["Decoder", "pil_image", "raw_bytes"]
