"""
picloader
=========

Remote picture loading with a content-addressed local cache, a bounded
preload scheduler and per-consumer load processes.

    from picloader import LoaderSettings, PictureLoader

    with PictureLoader.from_settings(LoaderSettings(cache_dir="cache"), urls=urls) as loader:
        loader.setup()
        loader.get_process(urls[0]).into(show).run()
"""

from picloader.core.cache import LocalContentCache, fingerprint
from picloader.core.cancel import CancellationToken
from picloader.core.errors import (
    InputError,
    NetworkError,
    NotFoundError,
    OperationCancelledError,
    PermanentNetworkError,
    PicLoaderError,
    StorageError,
    TransientNetworkError,
)
from picloader.core.fetch import Downloader, DownloadResult
from picloader.core.logging_utils import configure_logging
from picloader.core.preload import KeyState, PreloadScheduler
from picloader.core.process import PictureLoader, PictureProcess, ProcessState, TickerAnimation
from picloader.schemas.models import LoaderSettings, PreloadSummary

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "configure_logging",
    "Downloader",
    "DownloadResult",
    "fingerprint",
    "InputError",
    "KeyState",
    "LoaderSettings",
    "LocalContentCache",
    "NetworkError",
    "NotFoundError",
    "OperationCancelledError",
    "PermanentNetworkError",
    "PicLoaderError",
    "PictureLoader",
    "PictureProcess",
    "PreloadScheduler",
    "PreloadSummary",
    "ProcessState",
    "StorageError",
    "TickerAnimation",
    "TransientNetworkError",
]
