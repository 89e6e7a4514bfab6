"""
Pydantic model for an app's argument configuration and the algorithm that
composes it into a command-line string.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from companion_hub.models.argument import TYPE_PASSWORD, Argument

log = logging.getLogger(__name__)

REQUIRED_ON_SEPARATOR = "="
MASK = "***"


class Configuration(BaseModel):
    """An ordered set of arguments plus the rules used to render them."""

    model_config = ConfigDict(validate_assignment=True)

    prefix: str = ""
    delimiter: str = ""
    arguments: list[Argument] = Field(default_factory=list)
    is_raw: bool = False

    _saved_values: dict[str, str | None] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self.mark_saved()

    def get_argument(self, name: str) -> Argument | None:
        """Returns the argument with the given name, if any."""
        return next((a for a in self.arguments if a.name == name), None)

    def apply_runtime_arguments(self, runtime_arguments: dict[str, Any] | None) -> None:
        """Overlays per-invocation values onto the matching arguments."""
        if not runtime_arguments:
            return
        for name, value in runtime_arguments.items():
            argument = self.get_argument(name)
            if argument is not None:
                argument.value = None if value is None else str(value)

    def resolve_required_on_argument(self, argument: Argument) -> None:
        """Recomputes ``required`` for an argument declared as ``"other=literal"``."""
        if not argument.required_on_argument:
            return
        parts = argument.required_on_argument.split(REQUIRED_ON_SEPARATOR)
        if len(parts) != 2:
            return
        other_name, literal = parts
        other = self.get_argument(other_name)
        if other is not None:
            argument.required = other.value == literal

    def generate_argument_string(
        self,
        app: Any = None,
        runtime_arguments: dict[str, Any] | None = None,
    ) -> str:
        """
        Composes the current argument values into a command-line string.

        Args:
            app: The owning app, only used for log context.
            runtime_arguments: Per-invocation overrides applied before validation.

        Returns:
            The composed string; every token is preceded by a single space.

        Raises:
            ArgumentError: If a selected argument fails validation.
        """
        self.apply_runtime_arguments(runtime_arguments)

        if self.is_raw:
            if len(self.arguments) != 2:
                return ""
            return self.arguments[1].value or ""

        for argument in self.arguments:
            self.resolve_required_on_argument(argument)

        selected = [a for a in self.arguments if a.required or not a.is_empty]
        for argument in selected:
            argument.validate_value()

        composed = "".join(" " + self._render(argument) for argument in selected)
        log.debug(
            f"Composed {len(selected)} of {len(self.arguments)} arguments for "
            f"'{getattr(app, 'name', 'unknown')}'."
        )
        return composed

    def _render(self, argument: Argument) -> str:
        if argument.is_empty:
            return argument.name

        mapped = argument.mapped_value() or ""
        head = f"{self.prefix}{argument.name}{self.delimiter}"
        if argument.is_multi and mapped:
            return head + "".join(f' "{token}"' for token in mapped.split())
        return f'{head}"{mapped}"'

    def redact(self, command_line: str) -> str:
        """Masks the values of password arguments inside a composed string."""
        for argument in self.arguments:
            secret = argument.mapped_value()
            if argument.get_type_clear() == TYPE_PASSWORD and secret:
                command_line = command_line.replace(secret, mask_secret(secret))
        return command_line

    def persisted_values(self) -> dict[str, str | None]:
        """Returns the values worth saving; runtime arguments are never persisted."""
        return {a.name: a.value for a in self.arguments if not a.is_runtime_argument}

    def update_values(self, values: dict[str, str | None]) -> list[str]:
        """
        Sets persistent argument values, e.g. from a settings dialog.

        Returns:
            The names that matched no persistent argument.
        """
        ignored = []
        for name, value in values.items():
            argument = self.get_argument(name)
            if argument is None or argument.is_runtime_argument:
                ignored.append(name)
            else:
                argument.value = value
        return ignored

    def mark_saved(self) -> None:
        """Takes a snapshot of the persisted values as the new baseline."""
        self._saved_values = self.persisted_values()

    def changed_arguments(self) -> list[Argument]:
        """Returns the arguments whose value differs from the saved snapshot."""
        return [
            a
            for a in self.arguments
            if not a.is_runtime_argument
            and self._saved_values.get(a.name) != a.value
        ]

    def is_changed(self) -> bool:
        return bool(self.changed_arguments())


def mask_secret(secret: str) -> str:
    """Shows the first character of longer secrets and hides the rest."""
    if len(secret) <= 3:
        return MASK
    return secret[0] + "*" * min(len(secret) - 1, 8)
