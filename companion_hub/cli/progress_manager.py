"""
Renders the events of running apps in the console: a Rich progress bar per
download and one status line per lifecycle transition.
"""

import asyncio
from collections.abc import Callable

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from companion_hub.models.events import AppEvent, EventKind

STATUS_STYLES = {
    EventKind.DOWNLOAD_STARTED: ("cyan", "⬇", "Download started"),
    EventKind.DOWNLOAD_FINISHED: ("green", "✓", "Download finished"),
    EventKind.DOWNLOAD_FAILED: ("red", "✗", "Download failed"),
    EventKind.INSTALL_STARTED: ("cyan", "⚙", "Installing"),
    EventKind.INSTALL_FINISHED: ("green", "✓", "Installed"),
    EventKind.INSTALL_FAILED: ("red", "✗", "Install failed"),
    EventKind.CONFIGURATION_REQUIRED: ("yellow", "⚠", "Configuration required"),
    EventKind.RUN_STARTED: ("green", "▶", "Running"),
    EventKind.RUN_FAILED: ("red", "✗", "Launch failed"),
    EventKind.RUN_STOPPED: ("blue", "■", "Stopped"),
}


class ProgressManager:
    """
    Subscribes to the event channels of apps and renders what they report.
    Output lines are echoed only when ``show_output`` is set.
    """

    def __init__(self, console: Console, show_output: bool = False):
        self.console = console
        self.show_output = show_output

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=True,
        )

        self._tasks: dict[str, TaskID] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self._failures: list[AppEvent] = []

    @property
    def failures(self) -> list[AppEvent]:
        return list(self._failures)

    def attach(self, app) -> None:
        self._unsubscribers.append(app.events.subscribe(self.on_event))

    def on_event(self, event: AppEvent) -> None:
        if event.kind == EventKind.DOWNLOAD_PROGRESSED:
            self._update_download(event)
            return
        if event.kind == EventKind.OUTPUT:
            if self.show_output:
                style = "red" if event.stream == "stderr" else "dim"
                self.console.print(
                    f"[{style}]{event.app_name} │ {escape(event.message)}[/{style}]",
                    markup=True,
                    highlight=False,
                )
            return

        if event.kind in (EventKind.DOWNLOAD_FINISHED, EventKind.DOWNLOAD_FAILED):
            self._finish_download(event.app_name)
        if event.kind.is_failure:
            self._failures.append(event)
        self._print_status(event)

    def _update_download(self, event: AppEvent) -> None:
        progress = event.progress
        if progress is None:
            return
        total = progress.total_bytes if progress.total_bytes > 0 else None
        task_id = self._tasks.get(event.app_name)
        if task_id is None:
            task_id = self.progress.add_task(
                f"[cyan]{event.app_name}[/cyan]", total=total, start=True
            )
            self._tasks[event.app_name] = task_id
        self.progress.update(task_id, completed=progress.bytes_received, total=total)

    def _finish_download(self, app_name: str) -> None:
        task_id = self._tasks.pop(app_name, None)
        if task_id is not None:
            self.progress.remove_task(task_id)

    def _print_status(self, event: AppEvent) -> None:
        style, icon, label = STATUS_STYLES.get(
            event.kind, ("white", "•", event.kind.value)
        )
        details = f": {escape(event.message)}" if event.message else ""
        self.console.print(
            f"[{style}]{icon} {label}[/{style}] [bold]{event.app_name}[/bold]{details}"
        )

    async def __aenter__(self):
        self.progress.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await asyncio.sleep(0.1)
        self.progress.stop()
