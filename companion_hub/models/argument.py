"""
Pydantic model for a single typed, named command-line argument of an app.

The ``type`` declaration follows a small grammar: a base type, optionally
followed by an inclusive range (``int[0..10]``, ``float[0.5..2]``,
``string[3..20]``) or, for selections, a pipe-delimited list of literals
(``selection[fast|slow]``).
"""

import re
from typing import NamedTuple

from pathvalidate import ValidationError as PathValidationError
from pathvalidate import validate_filepath
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from companion_hub.exceptions import ArgumentError, ArgumentTypeError

TYPE_STRING = "string"
TYPE_FLOAT = "float"
TYPE_INT = "int"
TYPE_BOOL = "bool"
TYPE_FILE = "file"
TYPE_PATH = "path"
TYPE_PASSWORD = "password"
TYPE_SELECTION = "selection"

RANGED_TYPES = (TYPE_STRING, TYPE_FLOAT, TYPE_INT)
PLAIN_TYPES = (TYPE_BOOL, TYPE_FILE, TYPE_PATH, TYPE_PASSWORD)

RANGE_DELIMITER = ".."
RANGE_BORDER_START = "["
RANGE_BORDER_END = "]"
SELECTION_SEPARATOR = "|"

BOOL_LITERALS = frozenset({"true", "false", "1", "0", "yes", "no", "y", "n"})

_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_FLOAT_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


class TypeSpec(NamedTuple):
    """The parsed form of an argument type declaration."""

    base: str
    low: str | None = None
    high: str | None = None
    options: tuple[str, ...] = ()


def parse_int(text: str) -> int:
    """Parses an integer in invariant format."""
    text = text.strip()
    if not _INT_PATTERN.match(text):
        raise ValueError(f"'{text}' is not an integer")
    return int(text)


def parse_float(text: str) -> float:
    """Parses a float in invariant format (dot decimal separator, no inf/nan)."""
    text = text.strip()
    if not _FLOAT_PATTERN.match(text):
        raise ValueError(f"'{text}' is not a number")
    return float(text)


def parse_type(declaration: str) -> TypeSpec:
    """
    Parses a type declaration into its base type and constraints.

    Raises:
        ArgumentTypeError: If the declaration does not follow the grammar.
    """
    declaration = declaration.strip().lower()

    if declaration in PLAIN_TYPES:
        return TypeSpec(declaration)

    if declaration.startswith(TYPE_SELECTION):
        suffix = declaration[len(TYPE_SELECTION) :]
        if not (
            suffix.startswith(RANGE_BORDER_START) and suffix.endswith(RANGE_BORDER_END)
        ):
            raise ArgumentTypeError(
                f"Argument-Type '{declaration}' is invalid: expected "
                "selection[value1|value2|...]"
            )
        options = tuple(
            option.strip()
            for option in suffix[1:-1].split(SELECTION_SEPARATOR)
            if option.strip()
        )
        if not options:
            raise ArgumentTypeError(
                f"Argument-Type '{declaration}' is invalid: empty selection"
            )
        return TypeSpec(TYPE_SELECTION, options=options)

    for base in RANGED_TYPES:
        if not declaration.startswith(base):
            continue
        suffix = declaration[len(base) :]
        if not suffix:
            return TypeSpec(base)
        return TypeSpec(base, *_parse_range(declaration, base, suffix))

    raise ArgumentTypeError(f"Argument-Type '{declaration}' is invalid")


def _parse_range(declaration: str, base: str, suffix: str) -> tuple[str, str]:
    parts = suffix.split(RANGE_DELIMITER)
    if (
        len(parts) != 2
        or not parts[0].startswith(RANGE_BORDER_START)
        or not parts[1].endswith(RANGE_BORDER_END)
    ):
        raise ArgumentTypeError(
            f"Argument-Type '{declaration}' is invalid: expected {base}[LOW..HIGH]"
        )

    low, high = parts[0][1:], parts[1][:-1]
    bound_parser = parse_float if base == TYPE_FLOAT else parse_int
    try:
        bound_parser(low)
        bound_parser(high)
    except ValueError as e:
        raise ArgumentTypeError(
            f"Argument-Type '{declaration}' is invalid: {e}"
        ) from e
    return low, high


class Argument(BaseModel):
    """A typed, named configuration value that contributes to an app's command line."""

    model_config = ConfigDict(validate_assignment=True, coerce_numbers_to_str=True)

    name: str
    type: str
    required: bool = False
    section: str | None = None
    description: str | None = None
    name_human: str | None = Field(default=None, validate_default=True)
    required_on_argument: str | None = None
    empty_allowed_on_required: bool = False
    is_runtime_argument: bool = False
    is_multi: bool = False
    value: str | None = None
    value_mapping: dict[str, str] | None = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Normalizes the declaration and rejects anything outside the grammar."""
        v = v.strip().lower()
        parse_type(v)
        return v

    @field_validator("name_human")
    @classmethod
    def default_name_human(cls, v: str | None, info: ValidationInfo) -> str:
        """Falls back to the argument name for display purposes."""
        return v or info.data.get("name", "")

    @property
    def type_spec(self) -> TypeSpec:
        return parse_type(self.type)

    @property
    def range_by(self) -> str | None:
        return self.type_spec.low

    @property
    def range_to(self) -> str | None:
        return self.type_spec.high

    @property
    def is_empty(self) -> bool:
        return not self.value

    def get_type_clear(self) -> str:
        """Returns the base type without any range or selection suffix."""
        return self.type_spec.base

    def mapped_value(self) -> str | None:
        """Returns the command-line literal for the current value."""
        if self.value_mapping and self.value in self.value_mapping:
            return self.value_mapping[self.value]
        return self.value

    def validate_value(self) -> None:
        """
        Validates the current value against the required flag and type rules.

        Raises:
            ArgumentError: If the value is missing, malformed, or out of range.
        """
        if self.is_empty:
            if self.required and not self.empty_allowed_on_required:
                raise ArgumentError(self, "is required")
            return

        spec = self.type_spec
        value = self.value
        checker = {
            TYPE_STRING: self._check_string,
            TYPE_INT: self._check_int,
            TYPE_FLOAT: self._check_float,
            TYPE_BOOL: self._check_bool,
            TYPE_FILE: self._check_path,
            TYPE_PATH: self._check_path,
            TYPE_PASSWORD: None,
            TYPE_SELECTION: self._check_selection,
        }[spec.base]

        if checker is None:
            return
        try:
            checker(value, spec)
        except ValueError as e:
            raise ArgumentError(self, f"Invalid {spec.base}: {value}. {e}") from e

    @staticmethod
    def _out_of_range(spec: TypeSpec) -> ValueError:
        return ValueError(f"Out of range ({spec.low} to {spec.high})")

    def _check_string(self, value: str, spec: TypeSpec) -> None:
        if spec.low is None:
            return
        if not parse_int(spec.low) <= len(value) <= parse_int(spec.high):
            raise self._out_of_range(spec)

    def _check_int(self, value: str, spec: TypeSpec) -> None:
        number = parse_int(value)
        if spec.low is None:
            return
        if not parse_int(spec.low) <= number <= parse_int(spec.high):
            raise self._out_of_range(spec)

    def _check_float(self, value: str, spec: TypeSpec) -> None:
        number = parse_float(value)
        if spec.low is None:
            return
        if not parse_float(spec.low) <= number <= parse_float(spec.high):
            raise self._out_of_range(spec)

    @staticmethod
    def _check_bool(value: str, spec: TypeSpec) -> None:
        if value.strip().lower() not in BOOL_LITERALS:
            raise ValueError("Expected one of true/false, 1/0, yes/no, y/n")

    @staticmethod
    def _check_path(value: str, spec: TypeSpec) -> None:
        try:
            validate_filepath(value, platform="auto")
        except PathValidationError as e:
            raise ValueError(str(e)) from e

    @staticmethod
    def _check_selection(value: str, spec: TypeSpec) -> None:
        if value not in spec.options:
            raise ValueError(f"Out of selection ({', '.join(spec.options)})")
