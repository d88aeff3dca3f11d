"""
picloader.core.process
======================

Consumer-facing orchestration on top of the preload scheduler.

Exports:
- PictureLoader: process arena + scheduler facade
- PictureProcess, ProcessState, HeadLink: per-consumer builder and lifecycle
- Animation, TickerAnimation: wait-time effects contract and frame driver
"""

from .animations import Animation, TickerAnimation
from .loader import PictureLoader
from .process import HeadLink, PictureProcess, ProcessState

__all__ = [
    "Animation",
    "TickerAnimation",
    "PictureLoader",
    "HeadLink",
    "PictureProcess",
    "ProcessState",
]
