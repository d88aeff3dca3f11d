# picloader/core/fetch/__init__.py
from .downloader import Downloader, DownloadResult, Fetcher, Progress

__all__ = ["Downloader", "DownloadResult", "Fetcher", "Progress"]
