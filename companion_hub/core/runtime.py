"""
The lifecycle engine shared by every kind of app: composing the command line,
spawning and supervising the child process, capturing its output and closing it.
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from contextlib import suppress
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from companion_hub.core.events import EventChannel
from companion_hub.core.monitor import STDERR, STDOUT, OutputMonitor
from companion_hub.exceptions import ArgumentError, SpawnError
from companion_hub.models.argument import Argument
from companion_hub.models.configuration import Configuration
from companion_hub.models.events import AppEvent, EventKind
from companion_hub.models.settings import HubSettings
from companion_hub.utils.app_log import TAG_STDERR, TAG_STDOUT, AppLogFile
from companion_hub.utils.path import get_default_apps_dir
from companion_hub.utils.process import (
    build_elevated_command,
    ensure_executable_permissions,
    is_uri,
    is_windows,
    kill_process,
    kill_processes_by_path,
    open_with_shell,
    split_command_line,
)

log = logging.getLogger(__name__)

NO_PROCESS_ID = 0
STREAM_LIMIT = 1024 * 1024


class AppKind(str, Enum):
    """The closed set of app variants the engine knows how to manage."""

    LOCAL = "local"
    OPEN = "open"
    DOWNLOADABLE = "downloadable"
    INSTALLABLE = "installable"


class WindowState(str, Enum):
    """How the main window of a launched app should appear (Windows only)."""

    NORMAL = "normal"
    MINIMIZED = "minimized"
    MAXIMIZED = "maximized"
    HIDDEN = "hidden"


# SW_* values understood by STARTUPINFO.wShowWindow
_SHOW_WINDOW = {
    WindowState.HIDDEN: 0,
    WindowState.NORMAL: 1,
    WindowState.MINIMIZED: 2,
    WindowState.MAXIMIZED: 3,
}


class AppRuntime(ABC):
    """
    One externally managed companion program.

    The running state is owned by the supervisor: it flips to True once the
    process is spawned and back to False when the process exits or is closed.
    ``is_running()`` never probes the operating system.
    """

    kind: ClassVar[AppKind]

    def __init__(
        self,
        name: str,
        configuration: Configuration | None = None,
        *,
        custom_name: str | None = None,
        help_url: str | None = None,
        changelog_url: str | None = None,
        description_short: str | None = None,
        description_long: str | None = None,
        run_as_admin: bool = False,
        chmod: bool = False,
        start_window_state: WindowState = WindowState.MINIMIZED,
        settings: HubSettings | None = None,
    ):
        self.name = name
        self.custom_name = custom_name
        self.help_url = help_url
        self.changelog_url = changelog_url
        self.description_short = description_short
        self.description_long = description_long
        self.run_as_admin = run_as_admin
        self.chmod = chmod
        self.start_window_state = WindowState(start_window_state)
        self.configuration = configuration
        self.settings = settings or HubSettings(apps_dir=get_default_apps_dir())

        self.events = EventChannel()
        self.monitor = OutputMonitor(max_entries=self.settings.max_monitor_entries)
        self.argument_required: Argument | None = None
        self.runtime_arguments: dict[str, Any] | None = None
        self.process: asyncio.subprocess.Process | None = None
        self.process_id = NO_PROCESS_ID

        self._running = False
        self._executable: str | None = None
        self._start_lock = asyncio.Lock()
        self._supervisor: asyncio.Task | None = None
        self._output_log = logging.getLogger(f"companion_hub.apps.{name}")
        self.app_log = AppLogFile(self.settings.logs_dir, name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    @property
    def display_name(self) -> str:
        return self.custom_name or self.name

    @property
    def executable(self) -> str | None:
        """The executable resolved during the last run/close/install check."""
        return self._executable

    @property
    def monitor_text(self) -> str:
        return self.monitor.text

    # --- capability interface -------------------------------------------------

    @abstractmethod
    async def install(self, run_requested: bool = False) -> bool:
        """
        Starts acquiring the app if necessary.

        Args:
            run_requested: True when ``run()`` triggered the acquisition.

        Returns:
            True if an acquisition was started and the run has to wait for it.
        """

    @abstractmethod
    def is_configurable(self) -> bool: ...

    @abstractmethod
    def is_installable(self) -> bool: ...

    @abstractmethod
    def resolve_executable(self) -> str | None:
        """Returns the path or URL to launch, or None if it is not available."""

    def is_runnable(self) -> bool:
        return True

    def opens_with_shell(self, executable: str) -> bool:
        """True if the target is launched fire-and-forget by the OS shell."""
        return is_uri(executable)

    def is_installed(self) -> bool:
        self._executable = self.resolve_executable()
        if not self._executable:
            return False
        return is_uri(self._executable) or Path(self._executable).is_file()

    def is_running(self) -> bool:
        return self._running

    # --- lifecycle ------------------------------------------------------------

    async def run(self, runtime_arguments: dict[str, Any] | None = None) -> bool:
        """
        Launches the app, installing it first when needed.

        Returns:
            True if the app is running afterwards; False if the launch was
            deferred to a pending acquisition or blocked by invalid arguments.

        Raises:
            SpawnError: If the operating system refuses to start the process.
        """
        self.runtime_arguments = runtime_arguments
        # Check-and-spawn is one step: a concurrent run() waits, then sees it running.
        async with self._start_lock:
            self._executable = self.resolve_executable()
            if self.is_running():
                return True
            if not self.is_installed():
                if await self.install(run_requested=True):
                    return False
                self._executable = self.resolve_executable()
            return await self._run_process(runtime_arguments)

    async def rerun(self, runtime_arguments: dict[str, Any] | None = None) -> bool:
        """Restarts a running app; does nothing if it is not running."""
        if not self.is_running():
            return False
        await self.close()
        return await self.run(runtime_arguments)

    async def close(self) -> None:
        """
        Stops the app: a graceful termination request, a bounded wait, then a
        forced kill by process id and by executable path. Never raises.
        """
        self._executable = self.resolve_executable()
        if not self.is_runnable():
            return

        log.info(f"Stopping '{self.display_name}'...")
        self.app_log.write(f"=== {self.display_name} stopping ===")

        process = self.process
        if process is not None and process.returncode is None:
            await self._close_step("terminate", self._terminate(process))
        if self.process_id != NO_PROCESS_ID:
            await self._close_step(
                f"kill PID {self.process_id}",
                asyncio.to_thread(kill_process, self.process_id),
            )
        if self._executable and not is_uri(self._executable):
            await self._close_step(
                f"kill {self._executable}",
                asyncio.to_thread(kill_processes_by_path, self._executable),
            )

        self._set_stopped()
        self.app_log.write(f"=== {self.display_name} stopped ===")
        self.app_log.close()

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        with suppress(ProcessLookupError):
            process.terminate()
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(process.wait(), timeout=self.settings.close_timeout)

    async def _close_step(self, description: str, step) -> None:
        """Runs one escalation step; a failure never skips the ones after it."""
        try:
            await step
        except Exception as e:
            log.error(f"[red]Can't {description} for '{self.display_name}': {e}[/red]")

    async def wait_for_exit(self, timeout: float | None = None) -> bool:
        """
        Waits until the supervised process has exited.

        Returns:
            True if no supervised process is left running.
        """
        if self._supervisor is None:
            return True
        done, _ = await asyncio.wait({self._supervisor}, timeout=timeout)
        return bool(done)

    def compose_arguments(
        self, runtime_arguments: dict[str, Any] | None = None
    ) -> str | None:
        """
        Builds the command-line string for the next launch.

        Returns:
            The argument string, or None if an argument needs the user's
            attention (a CONFIGURATION_REQUIRED event has been emitted).
        """
        try:
            if self.is_configurable() and self.configuration is not None:
                composed = self.configuration.generate_argument_string(
                    self, runtime_arguments
                )
            else:
                composed = ""
        except ArgumentError as e:
            self.request_configuration(e)
            return None

        self.argument_required = None
        return composed

    def request_configuration(self, error: ArgumentError) -> None:
        """Remembers the offending argument and asks observers to correct it."""
        self.argument_required = error.argument
        message = f"{error.user_message} - Please correct it."
        log.warning(f"[yellow]{self.display_name}: {message}[/yellow]")
        self.emit(EventKind.CONFIGURATION_REQUIRED, message, argument=error.argument)

    def emit(self, kind: EventKind, message: str = "", **fields: Any) -> None:
        self.events.emit(AppEvent(kind=kind, app=self, message=message, **fields))

    # --- process supervision --------------------------------------------------

    async def _run_once(self, runtime_arguments: dict[str, Any] | None) -> bool:
        """Launches after an acquisition unless a run() got there first."""
        async with self._start_lock:
            if self.is_running():
                return True
            return await self._run_process(runtime_arguments)

    async def _run_process(self, runtime_arguments: dict[str, Any] | None) -> bool:
        if not self.is_runnable():
            return False
        arguments = self.compose_arguments(runtime_arguments)
        if arguments is None:
            return False

        executable = self._executable
        if not executable:
            message = f"No executable found for '{self.display_name}'."
            log.warning(f"[yellow]{message}[/yellow]")
            self._fail_run(message)
            return False

        self.monitor.reset()
        redacted = (
            self.configuration.redact(arguments) if self.configuration else arguments
        )
        log.info(f"Starting '{self.display_name}': {executable}{redacted}")
        self.app_log.write(f"=== {self.display_name} started ===")
        self.app_log.write(f"Starting process: {executable}{redacted}")

        if self.opens_with_shell(executable):
            # The shell resolves the target; there is no process to supervise.
            await open_with_shell(executable)
            self._set_started()
            return True

        try:
            if self.chmod:
                await ensure_executable_permissions(executable)
            command = [executable, *split_command_line(arguments)]
            if self.run_as_admin:
                command = build_elevated_command(command)
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(Path(executable).parent),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                **self._window_options(),
            )
        except (OSError, ValueError) as e:
            log.error(
                f'[red]An error occurred trying to start "{executable}": {e}[/red]'
            )
            error = SpawnError(f"Failed to start '{executable}': {e}")
            self._fail_run(str(error))
            raise error from e
        except SpawnError as e:
            log.error(f"[red]{e}[/red]")
            self._fail_run(str(e))
            raise

        self.process = process
        self.process_id = process.pid
        self._set_started()
        log.debug(f"'{self.display_name}' started with PID {process.pid}.")
        self._supervisor = asyncio.create_task(self._supervise(process))
        return True

    def _window_options(self) -> dict[str, Any]:
        if not is_windows():
            return {}
        startupinfo = subprocess.STARTUPINFO()
        startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        startupinfo.wShowWindow = _SHOW_WINDOW[self.start_window_state]
        return {"startupinfo": startupinfo}

    async def _supervise(self, process: asyncio.subprocess.Process) -> None:
        await asyncio.gather(
            self._pump(process.stdout, STDOUT),
            self._pump(process.stderr, STDERR),
        )
        exit_code = await process.wait()
        level = logging.INFO if exit_code == 0 else logging.WARNING
        log.log(level, f"'{self.display_name}' exited with code {exit_code}.")
        self.app_log.write(f"Process exited with code: {exit_code}")
        if self.process is process:
            self.process_id = NO_PROCESS_ID
            self._set_stopped(exit_code)

    async def _pump(self, stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than STREAM_LIMIT; the overrun has been discarded.
                continue
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self._record_output(line, name)

    def _record_output(self, line: str, stream: str) -> None:
        if not self.monitor.append(line, stream):
            return
        self._output_log.debug(line)
        self.app_log.write(line, TAG_STDERR if stream == STDERR else TAG_STDOUT)
        self.emit(EventKind.OUTPUT, line, stream=stream)

    def _fail_run(self, message: str) -> None:
        self.app_log.write(message)
        self.emit(EventKind.RUN_FAILED, message)

    def _set_started(self) -> None:
        if not self._running:
            self._running = True
            self.emit(EventKind.RUN_STARTED, "started")

    def _set_stopped(self, exit_code: int | None = None) -> None:
        if self._running:
            self._running = False
            self.emit(EventKind.RUN_STOPPED, "stopped", exit_code=exit_code)
