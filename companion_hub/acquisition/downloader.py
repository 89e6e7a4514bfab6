"""
Handles the low-level downloading of app artifacts over HTTP with retry logic
and progress reporting.
"""

import asyncio
import logging
import os
from collections.abc import Callable

import aiofiles
import aiohttp

from companion_hub.models.events import DownloadProgress
from companion_hub.utils.path import REMOTE_SIZE_UNKNOWN

log = logging.getLogger(__name__)

ProgressCallback = Callable[[DownloadProgress], None]

_connection_pool: aiohttp.ClientSession | None = None
_pool_loop: asyncio.AbstractEventLoop | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool() -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for downloads.

    This function ensures that only one connection pool is created per event
    loop for the lifetime of the application run.
    """
    global _connection_pool, _pool_loop
    loop = asyncio.get_running_loop()
    async with _pool_lock:
        if (
            _connection_pool
            and not _connection_pool.closed
            and _pool_loop is loop
        ):
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=16,
            limit_per_host=4,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
        # Artifacts are compared by byte size, so ask for the raw encoding.
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={"Accept-Encoding": "identity"},
        )
        _pool_loop = loop
        log.debug("Created download connection pool.")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool, _pool_loop
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            log.debug("Shared downloader connection pool closed.")
        _connection_pool = None
        _pool_loop = None


def content_length(headers) -> int:
    """Parses a Content-Length header; a missing or malformed one means unknown."""
    try:
        size = int(headers.get("Content-Length", ""))
    except (TypeError, ValueError):
        return REMOTE_SIZE_UNKNOWN
    return size if size >= 0 else REMOTE_SIZE_UNKNOWN


class Downloader:
    """A low-level file downloader with retry logic and progress callbacks."""

    CHUNK_SIZE = 131072  # 128 KB

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.5,
        probe_timeout: float = 4.0,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.probe_timeout = probe_timeout

    async def fetch_remote_size(self, url: str) -> int:
        """
        Asks the server for the artifact size without fetching the body.

        Returns:
            The Content-Length of the artifact, or ``REMOTE_SIZE_UNKNOWN``.

        Raises:
            aiohttp.ClientError: If the server cannot be reached or answers
            with an error status.
        """
        session = await get_connection_pool()
        timeout = aiohttp.ClientTimeout(total=self.probe_timeout)
        async with session.head(url, allow_redirects=True, timeout=timeout) as response:
            response.raise_for_status()
            return content_length(response.headers)

    async def download_file(
        self,
        url: str,
        destination_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        """
        Downloads a file from a URL, reporting progress after every chunk.

        Returns:
            The number of bytes written.
        """
        last_exception = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                session = await get_connection_pool()
                async with session.get(url, allow_redirects=True) as response:
                    response.raise_for_status()
                    total_size = content_length(response.headers)

                    bytes_downloaded = 0
                    async with aiofiles.open(destination_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(
                            self.CHUNK_SIZE
                        ):
                            await f.write(chunk)
                            bytes_downloaded += len(chunk)
                            if on_progress:
                                on_progress(
                                    DownloadProgress(bytes_downloaded, total_size)
                                )
                return bytes_downloaded
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{self.max_attempts} for "
                    f"'{os.path.basename(destination_path)}' failed: {e}. Retrying..."
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        raise last_exception
