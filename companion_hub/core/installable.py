"""
Apps that ship as a native installer: downloaded like any other app, then
installed unattended into a known location.
"""

import asyncio
import logging
from pathlib import Path

from companion_hub.core.downloadable import AppDownloadable
from companion_hub.core.runtime import AppKind
from companion_hub.exceptions import InstallerError, SpawnError
from companion_hub.models.configuration import Configuration
from companion_hub.models.events import EventKind
from companion_hub.utils.process import (
    build_elevated_command,
    ensure_executable_permissions,
    search_executable,
)

log = logging.getLogger(__name__)

UNATTENDED_INSTALL_ARGUMENTS = ("/qb", "ALLUSERS=1")


class AppInstallable(AppDownloadable):
    """
    An app that gets installed after download.

    The launch target is looked up only in ``default_path_executable``; the
    file system is never scanned for it.
    """

    kind = AppKind.INSTALLABLE

    def __init__(
        self,
        name: str,
        download_url: str,
        executable: str,
        configuration: Configuration | None = None,
        *,
        default_path_executable: str | None = None,
        starts_after_installation: bool = False,
        run_as_admin_install: bool = False,
        is_service: bool = False,
        **kwargs,
    ):
        super().__init__(name, download_url, configuration, **kwargs)
        self.executable_name = executable
        self.default_path_executable = default_path_executable
        self.starts_after_installation = starts_after_installation
        self.run_as_admin_install = run_as_admin_install
        self.is_service = is_service

    def is_runnable(self) -> bool:
        # Services are owned by the OS service manager once installed.
        return not self.is_service

    def resolve_executable(self) -> str | None:
        if not self.default_path_executable:
            return None
        default_dir = Path(self.default_path_executable).expanduser()
        candidate = default_dir / self.executable_name
        if default_dir.is_dir() and candidate.is_file():
            return str(candidate)
        return None

    async def _after_download(self, run_requested: bool) -> None:
        self.emit(EventKind.INSTALL_STARTED)
        try:
            exit_code = await self._run_installer()
        except (InstallerError, SpawnError, OSError) as e:
            log.error(f"[red]Installing '{self.display_name}' failed: {e}[/red]")
            self.emit(EventKind.INSTALL_FAILED, str(e))
            return

        if exit_code != 0:
            log.error(
                f"[red]Installer of '{self.display_name}' exited with {exit_code}.[/red]"
            )
            self.emit(
                EventKind.INSTALL_FAILED, f"error: {exit_code}", exit_code=exit_code
            )
            return

        self.emit(EventKind.INSTALL_FINISHED, "success", exit_code=exit_code)
        log.info(f"[green]Installed '{self.display_name}'.[/green]")

        if self.starts_after_installation or not self.should_auto_run(run_requested):
            return
        self._executable = self.resolve_executable()
        if not self._executable:
            message = (
                f"'{self.display_name}' was installed but "
                f"{self.executable_name} is not in {self.default_path_executable}."
            )
            log.warning(f"[yellow]{message}[/yellow]")
            self._fail_run(message)
            return
        await self._run_once(self.runtime_arguments)

    async def _run_installer(self) -> int:
        """
        Runs the downloaded installer unattended and waits for it to finish.

        Returns:
            The installer's exit code.

        Raises:
            InstallerError: If no installer was found in the download.
        """
        installer = search_executable(self.download_path)
        if installer is None:
            raise InstallerError(f"Installer for {self.name} not found")

        if self.chmod:
            await ensure_executable_permissions(str(installer))
        command = [str(installer), *UNATTENDED_INSTALL_ARGUMENTS]
        if self.run_as_admin_install:
            command = build_elevated_command(command)

        log.debug(f"Running installer: {' '.join(command)}")
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(self.download_path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        return await process.wait()
