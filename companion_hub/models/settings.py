"""
Pydantic model for the host settings that tune the app engine.
Provides robust validation for all settings.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_MONITOR_ENTRIES = 300


class AutoRunPolicy(str, Enum):
    """Decides whether an app is launched once its acquisition completes."""

    WHEN_REQUESTED = "when_requested"  # only if run() triggered the acquisition
    ALWAYS = "always"
    NEVER = "never"


class HubSettings(BaseModel):
    """A validated configuration model for the engine."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    apps_dir: Path
    max_monitor_entries: int = DEFAULT_MAX_MONITOR_ENTRIES
    close_timeout: float = 5.0
    download_attempts: int = 3
    retry_base_delay: float = 1.5
    probe_timeout: float = 4.0
    auto_run_policy: AutoRunPolicy = AutoRunPolicy.WHEN_REQUESTED
    log_json: bool = False
    app_log_files: bool = True

    # Internal fields not loaded from the INI file
    config_path: str = Field(default="", repr=False)

    @field_validator("max_monitor_entries")
    @classmethod
    def validate_monitor_entries(cls, v: int) -> int:
        if v < 1 or v > 100_000:
            raise ValueError("Max monitor entries must be between 1 and 100000.")
        return v

    @field_validator("close_timeout")
    @classmethod
    def validate_close_timeout(cls, v: float) -> float:
        if v < 0 or v > 120:
            raise ValueError("Close timeout must be between 0 and 120 seconds.")
        return v

    @field_validator("download_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Download attempts must be between 1 and 10.")
        return v

    @field_validator("retry_base_delay", "probe_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays and timeouts cannot be negative.")
        return v

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}

    @property
    def logs_dir(self) -> Path | None:
        """Where per-app log files go; None until loaded from a config directory."""
        if not self.config_path or not self.app_log_files:
            return None
        return Path(self.config_path) / "logs"
