from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from projects_api.customfields.errors import FieldParseError
from projects_api.customfields.types import (
    STRING_MAX_LENGTH,
    BooleanType,
    DateType,
    FloatType,
    IntegerType,
    ListType,
    TextType,
    field_type_for,
    interpret,
    is_blank,
    normalize_raw,
)


def test_field_type_for_maps_every_format() -> None:
    assert field_type_for("bool") == BooleanType()
    assert field_type_for("string") == TextType(multiline=False)
    assert field_type_for("text") == TextType(multiline=True)
    assert field_type_for("int") == IntegerType()
    assert field_type_for("float") == FloatType()
    assert field_type_for("date") == DateType()
    assert field_type_for("list", ["a", "b"]) == ListType(options=("a", "b"))

    with pytest.raises(ValueError):
        field_type_for("user")


def test_normalize_raw_stores_text() -> None:
    assert normalize_raw(None) is None
    assert normalize_raw(True) == "1"
    assert normalize_raw(False) == "0"
    assert normalize_raw(42) == "42"
    assert normalize_raw(Decimal("1.50")) == "1.50"
    assert normalize_raw(date(2024, 2, 29)) == "2024-02-29"
    assert normalize_raw(datetime(2024, 2, 29, 13, 45)) == "2024-02-29"
    assert normalize_raw("  padded ") == "  padded "


def test_blank_values_interpret_to_none() -> None:
    assert is_blank(None)
    assert is_blank("   ")
    assert not is_blank("0")
    assert interpret(IntegerType(), "") is None
    assert interpret(BooleanType(), None) is None


def test_boolean_interpretation() -> None:
    assert interpret(BooleanType(), "1") is True
    assert interpret(BooleanType(), "TRUE") is True
    assert interpret(BooleanType(), "0") is False
    assert interpret(BooleanType(), "off") is False

    with pytest.raises(FieldParseError) as exc_info:
        interpret(BooleanType(), "maybe")
    assert exc_info.value.reason == "invalid"


def test_string_rejects_long_and_multiline_values() -> None:
    string_type = field_type_for("string")
    assert interpret(string_type, "short") == "short"

    with pytest.raises(FieldParseError) as too_long:
        interpret(string_type, "x" * (STRING_MAX_LENGTH + 1))
    assert too_long.value.reason == "too_long"

    with pytest.raises(FieldParseError) as multiline:
        interpret(string_type, "two\nlines")
    assert multiline.value.reason == "invalid"

    assert interpret(field_type_for("text"), "two\nlines") == "two\nlines"


def test_numeric_interpretation() -> None:
    assert interpret(IntegerType(), " -12 ") == -12
    assert interpret(FloatType(), "3.25") == 3.25

    with pytest.raises(FieldParseError) as not_int:
        interpret(IntegerType(), "1.5")
    assert not_int.value.reason == "not_an_integer"

    with pytest.raises(FieldParseError) as not_number:
        interpret(FloatType(), "abc")
    assert not_number.value.reason == "not_a_number"

    with pytest.raises(FieldParseError):
        interpret(FloatType(), "nan")


def test_date_and_list_interpretation() -> None:
    assert interpret(DateType(), "2024-01-31") == date(2024, 1, 31)

    with pytest.raises(FieldParseError) as not_date:
        interpret(DateType(), "2024-02-30")
    assert not_date.value.reason == "not_a_date"

    options = ListType(options=("Option A", "Option B"))
    assert interpret(options, "Option B") == "Option B"

    with pytest.raises(FieldParseError) as not_included:
        interpret(options, "Option C")
    assert not_included.value.reason == "inclusion"


def test_float_accepts_plain_decimal_notation_only() -> None:
    assert interpret(FloatType(), "-.5") == -0.5
    assert interpret(FloatType(), "2.") == 2.0
    assert interpret(FloatType(), "1.5e3") == 1500.0

    for raw in ["1_000", "infinity", "-inf", "1e999", "0x10", "1.2.3"]:
        with pytest.raises(FieldParseError) as exc_info:
            interpret(FloatType(), raw)
        assert exc_info.value.reason == "not_a_number"
