# picloader/core/preload/__init__.py
from .scheduler import KeyState, PreloadScheduler

__all__ = ["KeyState", "PreloadScheduler"]
