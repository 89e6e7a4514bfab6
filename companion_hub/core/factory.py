"""
Builds app runtimes from their kind. The set of kinds is closed; an unknown
kind is a catalog error, never a plug-in lookup.
"""

from typing import Any

from companion_hub.core.downloadable import AppDownloadable
from companion_hub.core.installable import AppInstallable
from companion_hub.core.local import AppLocal, AppOpen
from companion_hub.core.runtime import AppKind, AppRuntime
from companion_hub.exceptions import ConfigurationError

APP_CLASSES: dict[AppKind, type[AppRuntime]] = {
    AppKind.LOCAL: AppLocal,
    AppKind.OPEN: AppOpen,
    AppKind.DOWNLOADABLE: AppDownloadable,
    AppKind.INSTALLABLE: AppInstallable,
}


def create_app(kind: AppKind | str, name: str, **options: Any) -> AppRuntime:
    """
    Instantiates the runtime class registered for ``kind``.

    Raises:
        ConfigurationError: If the kind is unknown or required options are missing.
    """
    try:
        app_class = APP_CLASSES[AppKind(kind)]
    except ValueError as e:
        raise ConfigurationError(f"Unknown app kind '{kind}' for '{name}'.") from e

    try:
        return app_class(name, **options)
    except TypeError as e:
        raise ConfigurationError(f"Invalid options for app '{name}': {e}") from e
