"""
Apps that are already available: a local executable or a file/URL handed to
the operating system's default program.
"""

from typing import Any

from companion_hub.core.runtime import AppKind, AppRuntime
from companion_hub.exceptions import ArgumentError
from companion_hub.models.argument import Argument
from companion_hub.models.configuration import Configuration


def default_local_configuration() -> Configuration:
    return Configuration(
        is_raw=True,
        arguments=[
            Argument(name="path-to-executable", type="file", required=True),
            Argument(name="arguments", type="string", required=False),
        ],
    )


def default_open_configuration(default_value: str | None = None) -> Configuration:
    return Configuration(
        is_raw=True,
        arguments=[
            Argument(
                name="file",
                name_human="file/url",
                type="string",
                required=True,
                value=default_value or None,
            )
        ],
    )


class _RawLauncher(AppRuntime):
    """
    Shared behaviour of apps whose first raw argument names the launch target.
    Nothing is ever acquired; the target must be supplied by the user.
    """

    async def install(self, run_requested: bool = False) -> bool:
        return False

    def is_configurable(self) -> bool:
        return True

    def is_installable(self) -> bool:
        return False

    def resolve_executable(self) -> str | None:
        if self.configuration is None or not self.configuration.arguments:
            return None
        return self.configuration.arguments[0].value or None

    def compose_arguments(
        self, runtime_arguments: dict[str, Any] | None = None
    ) -> str | None:
        # Raw mode skips validation, so the launch target is checked here.
        if self.configuration is not None and self.configuration.arguments:
            self.configuration.apply_runtime_arguments(runtime_arguments)
            target = self.configuration.arguments[0]
            try:
                target.validate_value()
            except ArgumentError as e:
                self.request_configuration(e)
                return None
            self._executable = self.resolve_executable()
        return super().compose_arguments(runtime_arguments)


class AppLocal(_RawLauncher):
    """An app that is already on the file system."""

    kind = AppKind.LOCAL

    def __init__(self, name: str, configuration: Configuration | None = None, **kwargs):
        super().__init__(
            name, configuration or default_local_configuration(), **kwargs
        )


class AppOpen(_RawLauncher):
    """A file or URL that is started by the default program of the OS."""

    kind = AppKind.OPEN

    def opens_with_shell(self, executable: str) -> bool:
        return True

    def __init__(
        self,
        name: str,
        configuration: Configuration | None = None,
        default_value: str | None = None,
        **kwargs,
    ):
        super().__init__(
            name, configuration or default_open_configuration(default_value), **kwargs
        )
