"""
Loads the JSON app catalog into runtime objects and writes changed argument
values back to it.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from companion_hub.core.factory import create_app
from companion_hub.core.runtime import AppKind, AppRuntime, WindowState
from companion_hub.exceptions import ConfigurationError
from companion_hub.models.configuration import Configuration
from companion_hub.models.settings import HubSettings

log = logging.getLogger(__name__)

CATALOG_FILE_NAME = "apps.json"


class AppSpec(BaseModel):
    """One catalog entry, as written by the user."""

    model_config = ConfigDict(extra="forbid")

    kind: AppKind
    name: str = Field(min_length=1)
    custom_name: str | None = None
    help_url: str | None = None
    changelog_url: str | None = None
    description_short: str | None = None
    description_long: str | None = None
    run_as_admin: bool = False
    chmod: bool = False
    start_window_state: WindowState = WindowState.MINIMIZED
    configuration: Configuration | None = None

    # open
    default_value: str | None = None
    # downloadable / installable
    download_url: str | None = None
    # installable
    executable: str | None = None
    default_path_executable: str | None = None
    starts_after_installation: bool = False
    run_as_admin_install: bool = False
    is_service: bool = False

    @model_validator(mode="after")
    def check_kind_options(self) -> "AppSpec":
        if self.kind in (AppKind.DOWNLOADABLE, AppKind.INSTALLABLE):
            if not self.download_url:
                raise ValueError(f"'{self.kind.value}' apps need a download_url.")
        if self.kind == AppKind.INSTALLABLE and not self.executable:
            raise ValueError("'installable' apps need an executable name.")
        return self

    def options(self) -> dict[str, Any]:
        """Constructor keyword arguments for the runtime class of this kind."""
        common = {
            "configuration": self.configuration,
            "custom_name": self.custom_name,
            "help_url": self.help_url,
            "changelog_url": self.changelog_url,
            "description_short": self.description_short,
            "description_long": self.description_long,
            "run_as_admin": self.run_as_admin,
            "chmod": self.chmod,
            "start_window_state": self.start_window_state,
        }
        if self.kind == AppKind.OPEN:
            common["default_value"] = self.default_value
        if self.kind in (AppKind.DOWNLOADABLE, AppKind.INSTALLABLE):
            common["download_url"] = self.download_url
        if self.kind == AppKind.INSTALLABLE:
            common.update(
                executable=self.executable,
                default_path_executable=self.default_path_executable,
                starts_after_installation=self.starts_after_installation,
                run_as_admin_install=self.run_as_admin_install,
                is_service=self.is_service,
            )
        return common


class CatalogFile(BaseModel):
    apps: list[AppSpec] = Field(default_factory=list)


class AppCatalog:
    """Handles the ``apps.json`` file that declares every managed app."""

    def __init__(self, catalog_file_path: Path, settings: HubSettings):
        self.catalog_file_path = Path(catalog_file_path)
        self.settings = settings
        self._raw: dict[str, Any] = {"apps": []}

    def load(self) -> dict[str, AppRuntime]:
        """
        Reads the catalog and builds one runtime per entry.

        Returns:
            The runtimes keyed by app name, in catalog order.

        Raises:
            ConfigurationError: If the file is missing, not valid JSON, declares an
            app twice or contains an invalid entry (including a bad argument type).
        """
        if not self.catalog_file_path.is_file():
            raise ConfigurationError(
                f"App catalog not found at '{self.catalog_file_path}'. "
                "Please run 'companion-hub init' first.",
                file=str(self.catalog_file_path),
            )

        try:
            with open(self.catalog_file_path, encoding="utf-8") as f:
                self._raw = json.load(f)
            catalog = CatalogFile.model_validate(self._raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Error parsing app catalog: {e}", file=str(self.catalog_file_path)
            ) from e
        except ValidationError as e:
            raise ConfigurationError(
                f"App catalog validation failed:\n{e}",
                file=str(self.catalog_file_path),
            ) from e

        apps: dict[str, AppRuntime] = {}
        for spec in catalog.apps:
            if spec.name in apps:
                raise ConfigurationError(
                    f"App '{spec.name}' is declared more than once.",
                    file=str(self.catalog_file_path),
                )
            apps[spec.name] = create_app(
                spec.kind, spec.name, settings=self.settings, **spec.options()
            )
        log.debug(f"Loaded {len(apps)} apps from '{self.catalog_file_path}'.")
        return apps

    def save_values(self, apps: dict[str, AppRuntime]) -> bool:
        """
        Writes changed argument values back into the catalog. Runtime arguments
        are never persisted.

        Returns:
            True if the file was rewritten.
        """
        entries = {entry.get("name"): entry for entry in self._raw.get("apps", [])}
        changed = False
        for name, app in apps.items():
            configuration = app.configuration
            entry = entries.get(name)
            if configuration is None or entry is None or not configuration.is_changed():
                continue
            entry["configuration"] = _merge_values(
                entry.get("configuration"), configuration
            )
            changed = True

        if not changed:
            return False

        try:
            with open(self.catalog_file_path, "w", encoding="utf-8") as f:
                json.dump(self._raw, f, indent=2, ensure_ascii=False)
                f.write("\n")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save app catalog: {e}", file=str(self.catalog_file_path)
            ) from e

        for app in apps.values():
            if app.configuration is not None:
                app.configuration.mark_saved()
        log.info(f"Saved argument values to '{self.catalog_file_path}'.")
        return True

    @staticmethod
    def write_empty(catalog_file_path: Path) -> None:
        try:
            catalog_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(catalog_file_path, "w", encoding="utf-8") as f:
                json.dump({"apps": []}, f, indent=2)
                f.write("\n")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to create app catalog: {e}", file=str(catalog_file_path)
            ) from e


def _merge_values(
    raw_configuration: dict[str, Any] | None, configuration: Configuration
) -> dict[str, Any]:
    if not raw_configuration:
        # The app used its built-in default configuration.
        return configuration.model_dump(mode="json", exclude_none=True)

    values = configuration.persisted_values()
    for raw_argument in raw_configuration.get("arguments", []):
        name = raw_argument.get("name")
        if name not in values:
            continue
        if values[name] is None:
            raw_argument.pop("value", None)
        else:
            raw_argument["value"] = values[name]
    return raw_configuration
