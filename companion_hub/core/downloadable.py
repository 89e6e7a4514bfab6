"""
Apps fetched from the internet into their own directory below the apps base
directory, extracted if they arrive as an archive.
"""

import asyncio
import logging
from pathlib import Path

import aiohttp

from companion_hub.acquisition import Downloader, extract_archive
from companion_hub.core.runtime import AppKind, AppRuntime
from companion_hub.exceptions import AcquisitionError, CompanionHubError
from companion_hub.models.configuration import Configuration
from companion_hub.models.events import DownloadProgress, EventKind
from companion_hub.models.settings import AutoRunPolicy
from companion_hub.utils.path import (
    app_directory,
    file_name_from_url,
    local_file_size,
    remove_dir,
)
from companion_hub.utils.process import search_executable

log = logging.getLogger(__name__)

LOCAL_VERSION_MARKER = "my_version"

ACQUISITION_ERRORS = (
    CompanionHubError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)


class AppDownloadable(AppRuntime):
    """
    An app that can be downloaded from the internet.

    ``install()`` only kicks the acquisition off; completion is reported through
    the event channel (started, progressed*, finished or failed) and can be
    awaited with ``wait_for_acquisition()``.
    """

    kind = AppKind.DOWNLOADABLE

    def __init__(
        self,
        name: str,
        download_url: str,
        configuration: Configuration | None = None,
        **kwargs,
    ):
        super().__init__(name, configuration, **kwargs)
        self.download_url = download_url
        self.downloader = Downloader(
            max_attempts=self.settings.download_attempts,
            base_delay=self.settings.retry_base_delay,
            probe_timeout=self.settings.probe_timeout,
        )
        self._acquisition: asyncio.Task | None = None

    @property
    def download_path(self) -> Path:
        return app_directory(self.settings.apps_dir, self.name)

    @property
    def download_path_file(self) -> Path:
        return self.download_path / file_name_from_url(self.download_url)

    def is_configurable(self) -> bool:
        return self.configuration is not None

    def is_installable(self) -> bool:
        return True

    def is_acquiring(self) -> bool:
        return self._acquisition is not None and not self._acquisition.done()

    def has_local_version(self) -> bool:
        """True if the user pinned a build of their own into the app directory."""
        if not self.download_path.is_dir():
            return False
        return any(
            entry.name.startswith(LOCAL_VERSION_MARKER)
            for entry in self.download_path.iterdir()
        )

    def resolve_executable(self) -> str | None:
        executable = search_executable(self.download_path)
        return str(executable) if executable else None

    def should_auto_run(self, run_requested: bool) -> bool:
        """Decides whether a finished acquisition chains into a launch."""
        policy = self.settings.auto_run_policy
        if policy == AutoRunPolicy.ALWAYS:
            return True
        if policy == AutoRunPolicy.NEVER:
            return False
        return run_requested

    async def install(self, run_requested: bool = False) -> bool:
        """
        Downloads the app unless the cached artifact is already current.

        Returns:
            True if a download has been started in the background.
        """
        if self.is_acquiring():
            log.debug(f"Acquisition of '{self.display_name}' is already running.")
            return True

        if self.has_local_version():
            log.info(
                f"'{self.display_name}' uses a local version, skipping the download."
            )
            return False

        try:
            remote_size = await self.downloader.fetch_remote_size(self.download_url)
            local_size = local_file_size(self.download_path_file)
            log.debug(
                f"'{self.display_name}': remote size {remote_size}, "
                f"local size {local_size}."
            )
            if remote_size == local_size:
                return False

            remove_dir(self.download_path, recreate=True)
        except ACQUISITION_ERRORS as e:
            self._fail_download(e)
            return False

        self.emit(EventKind.DOWNLOAD_STARTED)
        log.info(f"Downloading '{self.display_name}' from {self.download_url}")
        self._acquisition = asyncio.create_task(self._acquire(run_requested))
        return True

    async def wait_for_acquisition(self, timeout: float | None = None) -> bool:
        """
        Waits for a running download/install to complete.

        Returns:
            True if no acquisition is left running.
        """
        if self._acquisition is None:
            return True
        done, _ = await asyncio.wait({self._acquisition}, timeout=timeout)
        return bool(done)

    async def _acquire(self, run_requested: bool) -> None:
        try:
            await self.downloader.download_file(
                self.download_url,
                str(self.download_path_file),
                on_progress=self._on_progress,
            )
            await asyncio.to_thread(
                extract_archive, self.download_path_file, self.download_path
            )
            self.emit(EventKind.DOWNLOAD_FINISHED, "success")
            log.info(f"[green]Downloaded '{self.display_name}'.[/green]")
            await self._after_download(run_requested)
        except ACQUISITION_ERRORS as e:
            self._fail_download(e)
        except Exception as e:
            log.error(
                f"[red]Unexpected error while acquiring '{self.display_name}'.[/red]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            self._fail_download(e)

    def _on_progress(self, progress: DownloadProgress) -> None:
        self.emit(
            EventKind.DOWNLOAD_PROGRESSED,
            f"{progress.percentage:.0f}%",
            progress=progress,
        )

    def _fail_download(self, error: Exception) -> None:
        log.error(f"[red]Download of '{self.display_name}' failed: {error}[/red]")
        try:
            remove_dir(self.download_path)
        except OSError as e:
            log.warning(f"Could not remove '{self.download_path}': {e}")
        self.emit(EventKind.DOWNLOAD_FAILED, str(error))

    async def _after_download(self, run_requested: bool) -> None:
        if not self.should_auto_run(run_requested):
            return
        self._executable = self.resolve_executable()
        if not self._executable:
            raise AcquisitionError(
                f"No executable found for {self.name} in {self.download_path}"
            )
        await self._run_once(self.runtime_arguments)
