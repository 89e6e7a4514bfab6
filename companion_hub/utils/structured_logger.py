"""
Structured logging of app lifecycles for later analysis and debugging.
Provides JSON-formatted logs with session context and event metadata.
"""

import json
import logging
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from companion_hub.models.events import AppEvent, EventKind

if TYPE_CHECKING:
    from companion_hub.core.runtime import AppRuntime

# Output lines are already logged per app; progress is too chatty for a file.
QUIET_KINDS = frozenset({EventKind.OUTPUT, EventKind.DOWNLOAD_PROGRESSED})


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("companion_hub", log_dir=Path("logs"))
        logger.info("app_run_started", app="caller", pid=4242)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Forward entries to the standard logger as well
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        self.json_log_path: Path | None = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"companion_hub_{timestamp}.jsonl"
            self._json_file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        for key, value in context.items():
            if key not in ("level", "timestamp"):
                parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, TypeError, ValueError) as e:
            # Fallback to stderr if JSON logging fails
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def log(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self.log(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self.log(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self.log(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self.log(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class LifecycleLogger:
    """Turns the events published by apps into structured log entries."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, app: "AppRuntime") -> None:
        self._unsubscribers.append(app.events.subscribe(self.on_event))

    def detach_all(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def on_event(self, event: AppEvent) -> None:
        if event.kind in QUIET_KINDS:
            return
        context: dict[str, Any] = {"app": event.app_name}
        if event.message:
            context["message"] = event.message
        if event.exit_code is not None:
            context["exit_code"] = event.exit_code
        if event.argument is not None:
            context["argument"] = event.argument.name
        if event.kind == EventKind.DOWNLOAD_STARTED:
            context["url"] = getattr(event.app, "download_url", None)

        level = logging.WARNING if event.kind.is_failure else logging.INFO
        self.logger.log(level, f"app_{event.kind.value}", **context)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, LifecycleLogger]:
    """
    Create the structured loggers.

    Console forwarding is off: the engine already logs every transition through
    the standard loggers.

    Returns:
        Tuple of (base_logger, lifecycle_logger)
    """
    base = StructuredLogger(
        "companion_hub.lifecycle",
        log_dir=log_dir,
        enable_json=enable_json,
        enable_console=False,
    )
    return base, LifecycleLogger(base)
