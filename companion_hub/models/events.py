"""
Data structures for the notifications an app publishes to its observers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from companion_hub.models.argument import Argument


class EventKind(Enum):
    """Every lifecycle transition an app reports."""

    DOWNLOAD_STARTED = "download_started"
    DOWNLOAD_PROGRESSED = "download_progressed"
    DOWNLOAD_FINISHED = "download_finished"
    DOWNLOAD_FAILED = "download_failed"
    INSTALL_STARTED = "install_started"
    INSTALL_FINISHED = "install_finished"
    INSTALL_FAILED = "install_failed"
    CONFIGURATION_REQUIRED = "configuration_required"
    RUN_STARTED = "run_started"
    RUN_FAILED = "run_failed"
    RUN_STOPPED = "run_stopped"
    OUTPUT = "output"

    @property
    def is_failure(self) -> bool:
        return self in (
            EventKind.DOWNLOAD_FAILED,
            EventKind.INSTALL_FAILED,
            EventKind.CONFIGURATION_REQUIRED,
            EventKind.RUN_FAILED,
        )


@dataclass(frozen=True)
class DownloadProgress:
    """A snapshot of a running download."""

    bytes_received: int
    total_bytes: int

    @property
    def percentage(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return min(100.0, self.bytes_received * 100.0 / self.total_bytes)


@dataclass(frozen=True)
class AppEvent:
    """A notification fired by an app; ``app`` is the originating runtime."""

    kind: EventKind
    app: Any
    message: str = ""
    progress: DownloadProgress | None = None
    argument: "Argument | None" = None
    exit_code: int | None = None
    stream: str | None = None

    @property
    def app_name(self) -> str:
        return getattr(self.app, "name", "")
