"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from companion_hub.models.argument import Argument

# Every validation failure message starts with this key so callers can route
# it to a "configuration required" notification instead of a fatal abort.
ARGUMENT_ERROR_KEY = "ArgumentValidateParse-Error"


class CompanionHubError(Exception):
    """Base exception for all application-specific errors."""


class ArgumentTypeError(CompanionHubError, ValueError):
    """Raised when an argument's type declaration cannot be parsed."""


class ArgumentError(CompanionHubError):
    """
    Raised when an argument value fails validation.

    The offending argument is attached so the UI can highlight the field.
    """

    def __init__(self, argument: "Argument", reason: str):
        self.argument = argument
        self.reason = reason
        super().__init__(f"{ARGUMENT_ERROR_KEY}{argument.name_human}: {reason}")

    @property
    def user_message(self) -> str:
        """The message without the routing key."""
        return str(self)[len(ARGUMENT_ERROR_KEY) :]


class AcquisitionError(CompanionHubError):
    """Raised when downloading or extracting an app artifact fails."""


class InstallerError(CompanionHubError):
    """Raised when a native installer cannot be found or exits with an error."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class SpawnError(CompanionHubError):
    """Raised when the operating system refuses to start an app process."""


class ConfigurationError(CompanionHubError):
    """Raised for issues related to settings or catalog loading and validation."""

    def __init__(self, message: str, file: str | None = None):
        super().__init__(message)
        self.file = file
