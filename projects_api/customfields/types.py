"""Field formats and interpretation of raw custom values.

Raw values are always stored as text. ``interpret`` turns a raw value into the
typed value of a field format, raising ``FieldParseError`` with a failure
reason when the raw value does not fit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from projects_api.customfields.errors import FieldParseError

FieldFormat = Literal["bool", "string", "text", "int", "float", "date", "list"]
FIELD_FORMATS: tuple[str, ...] = ("bool", "string", "text", "int", "float", "date", "list")

TRUE_VALUES = {"1", "t", "true", "yes", "on"}
FALSE_VALUES = {"0", "f", "false", "no", "off"}
STRING_MAX_LENGTH = 255

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True, slots=True)
class BooleanType:
    pass


@dataclass(frozen=True, slots=True)
class TextType:
    multiline: bool = True


@dataclass(frozen=True, slots=True)
class IntegerType:
    pass


@dataclass(frozen=True, slots=True)
class FloatType:
    pass


@dataclass(frozen=True, slots=True)
class DateType:
    pass


@dataclass(frozen=True, slots=True)
class ListType:
    options: tuple[str, ...] = ()


FieldType = BooleanType | TextType | IntegerType | FloatType | DateType | ListType


def field_type_for(field_format: str, possible_values: list[str] | None = None) -> FieldType:
    if field_format == "bool":
        return BooleanType()
    if field_format == "string":
        return TextType(multiline=False)
    if field_format == "text":
        return TextType(multiline=True)
    if field_format == "int":
        return IntegerType()
    if field_format == "float":
        return FloatType()
    if field_format == "date":
        return DateType()
    if field_format == "list":
        return ListType(options=tuple(possible_values or ()))
    raise ValueError(f"unsupported field_format: {field_format}")


def normalize_raw(value: Any) -> str | None:
    """Convert an assigned scalar into its stored text form."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def is_blank(raw: str | None) -> bool:
    return raw is None or not raw.strip()


def interpret(field_type: FieldType, raw: str | None) -> Any:
    if raw is None or not raw.strip():
        return None

    if isinstance(field_type, BooleanType):
        lowered = raw.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
        raise FieldParseError("invalid")

    if isinstance(field_type, TextType):
        if not field_type.multiline and len(raw) > STRING_MAX_LENGTH:
            raise FieldParseError("too_long")
        if not field_type.multiline and "\n" in raw:
            raise FieldParseError("invalid")
        return raw

    if isinstance(field_type, IntegerType):
        if not _INT_RE.match(raw.strip()):
            raise FieldParseError("not_an_integer")
        return int(raw.strip())

    if isinstance(field_type, FloatType):
        if not _FLOAT_RE.match(raw.strip()):
            raise FieldParseError("not_a_number")
        parsed = float(raw.strip())
        # exponents such as 1e999 overflow to infinity
        if parsed in (float("inf"), float("-inf")):
            raise FieldParseError("not_a_number")
        return parsed

    if isinstance(field_type, DateType):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            raise FieldParseError("not_a_date")

    if isinstance(field_type, ListType):
        if raw not in field_type.options:
            raise FieldParseError("inclusion")
        return raw

    raise FieldParseError("invalid")
