"""
Per-app log files. Each app writes to ``<logs dir>/<app>/<DD>_<app>.log``, one
file per day of the month; a file last written in an earlier month is replaced
when its day comes round again, so at most a month of history is kept.
"""

import logging
from datetime import datetime
from pathlib import Path

from pathvalidate import sanitize_filename

log = logging.getLogger(__name__)

TAG_SYSTEM = "SYSTEM"
TAG_STDOUT = "OUT"
TAG_STDERR = "ERR"

_LINE_FORMAT = "[%(asctime)s.%(msecs)03d] [%(tag)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def app_log_path(logs_dir: Path, app_name: str, now: datetime) -> Path:
    """Returns the log file an app writes to on the given day."""
    name = sanitize_filename(app_name, platform="auto") or "app"
    return Path(logs_dir) / name / f"{now:%d}_{name}.log"


class AppLogFile:
    """
    Writes an app's output and lifecycle markers to its daily log file.
    Disabled when no logs directory is given.
    """

    def __init__(self, logs_dir: Path | None, app_name: str):
        self.logs_dir = Path(logs_dir) if logs_dir else None
        self.app_name = app_name
        self.path: Path | None = None
        self._handler: logging.FileHandler | None = None
        # Standalone logger: not registered globally, never propagates.
        self._logger = logging.Logger(f"companion_hub.app_log.{app_name}")

    @property
    def enabled(self) -> bool:
        return self.logs_dir is not None

    def write(
        self, message: str, tag: str = TAG_SYSTEM, now: datetime | None = None
    ) -> None:
        """Appends one line; I/O problems are reported and never raised."""
        if not self.enabled or not message:
            return
        try:
            self._ensure_file(now or datetime.now())
            self._logger.info(message, extra={"tag": tag})
        except OSError as e:
            log.warning(f"Could not write the log file of '{self.app_name}': {e}")

    def close(self) -> None:
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def _ensure_file(self, now: datetime) -> None:
        path = app_log_path(self.logs_dir, self.app_name, now)
        if self._handler is not None and path == self.path:
            return

        self.close()
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.is_file():
            modified = datetime.fromtimestamp(path.stat().st_mtime)
            if (modified.year, modified.month) != (now.year, now.month):
                log.debug(f"Replacing log file from an earlier month: '{path}'.")
                path.unlink()

        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(_LINE_FORMAT, _DATE_FORMAT))
        self._logger.addHandler(handler)
        self._handler = handler
        self.path = path
