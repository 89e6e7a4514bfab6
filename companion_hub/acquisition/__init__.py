"""
Acquisition Layer.

This package is responsible for fetching app artifacts over HTTP and
unpacking them into the app's install directory.
"""

from .downloader import Downloader, close_connection_pool
from .extractor import extract_archive, is_archive

__all__ = ["Downloader", "close_connection_pool", "extract_archive", "is_archive"]
