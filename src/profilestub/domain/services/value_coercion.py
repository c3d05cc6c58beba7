"""Value coercion for field input.

Turns arbitrary input values into the representation stored for a field
type. Coercion never fails: values that cannot be interpreted become the
type's neutral value (0, 0.0, '' or the zero date).
"""

import re
from collections.abc import Iterable, Mapping
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Any

from profilestub.domain.entities.schema import Field, FieldType
from profilestub.domain.services.date_parser import (
    format_date,
    format_datetime,
    parse_datetime,
)

ZERO_DATE = "0000-00-00"
ZERO_DATETIME = "0000-00-00 00:00:00"

# Range of a 64-bit INTEGER column
INTEGER_MIN = -(2**63)
INTEGER_MAX = 2**63 - 1

# Leading numeric part of a string, the way the API reads numbers
_NUMERIC_PREFIX = re.compile(
    r"^\s*(?P<number>[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)"
)
# Strict integer, optionally signed
_INTEGER = re.compile(r"^\s*[+-]?\d+\s*$")
# Strict number: integer, decimal or scientific notation
_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")


def is_compound(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset, Mapping))


def format_float(value: float) -> str:
    """Render a float with 14 significant digits, dropping a trailing '.0'."""
    if value != value:
        return "NAN"
    if value in (float("inf"), float("-inf")):
        return "INF" if value > 0 else "-INF"
    text = "%.14G" % value
    if "E" in text:
        mantissa, exponent = text.split("E")
        if "." not in mantissa:
            mantissa += ".0"
        text = f"{mantissa}E{exponent}"
    return text


def coerce_text(value: Any) -> str:
    """Coerce a value for a text or email field."""
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float):
        return format_float(value)
    if is_compound(value):
        return ""
    return str(value)


def _number_prefix(text: str) -> str | None:
    match = _NUMERIC_PREFIX.match(text)
    return match["number"] if match else None


def _clamp(number: int) -> int:
    return max(INTEGER_MIN, min(INTEGER_MAX, number))


def coerce_integer(value: Any) -> int:
    """Coerce a value for an integer field, truncating toward zero.

    Results outside the 64-bit integer range are clamped to its bounds.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return _clamp(value)
    if isinstance(value, (float, Decimal)):
        if value != value or value in (float("inf"), float("-inf")):
            return 0
        return _clamp(int(value))
    if is_compound(value):
        return 1 if value else 0
    number = _number_prefix(str(value))
    if number is None:
        return 0
    if _INTEGER.match(number):
        try:
            return _clamp(int(number))
        except ValueError:
            # More digits than int() converts from a string
            return INTEGER_MIN if number.startswith("-") else INTEGER_MAX
    try:
        return _clamp(int(float(number)))
    except OverflowError:
        return 0


def coerce_float(value: Any) -> float:
    """Coerce a value for a float field."""
    if value is None:
        return 0.0
    if isinstance(value, (bool, int, float, Decimal)):
        try:
            return float(value)
        except OverflowError:
            return float("inf") if value > 0 else float("-inf")
    if is_compound(value):
        return 1.0 if value else 0.0
    number = _number_prefix(str(value))
    return float(number) if number is not None else 0.0


def coerce_date(value: Any, tz: tzinfo | None = None, now: datetime | None = None) -> str:
    """Coerce a value for a date field; unparseable input gives the zero date."""
    moment = parse_datetime(value, tz, now)
    return format_date(moment, tz) if moment is not None else ZERO_DATE


def coerce_datetime(value: Any, tz: tzinfo | None = None, now: datetime | None = None) -> str:
    """Coerce a value for a datetime field; unparseable input gives the zero datetime."""
    moment = parse_datetime(value, tz, now)
    return format_datetime(moment, tz) if moment is not None else ZERO_DATETIME


def coerce_value(
    value: Any,
    field: Field | FieldType | str,
    tz: tzinfo | None = None,
    now: datetime | None = None,
) -> str | int | float:
    """Coerce an input value to the stored representation for a field.

    Args:
        value: Any input value.
        field: The target field, or just its type.
        tz: Zone used for date input and output; None for local time.
        now: Current moment, for relative date input.

    Returns:
        str for text, email and date types; int for integer; float for float.
    """
    field_type = FieldType(field.type if isinstance(field, Field) else field)
    if field_type == FieldType.INTEGER:
        return coerce_integer(value)
    if field_type == FieldType.FLOAT:
        return coerce_float(value)
    if field_type.is_date:
        return coerce_date(value, tz, now)
    if field_type.is_datetime:
        return coerce_datetime(value, tz, now)
    return coerce_text(value)


def is_valid_default(value: Any, field_type: FieldType) -> bool:
    """Check a numeric field's default value in a structure description.

    Integer defaults must be integers (or integer strings); float defaults
    must be numbers (or numeric strings).
    """
    if isinstance(value, bool):
        return field_type == FieldType.INTEGER and value is True
    if field_type == FieldType.INTEGER:
        if isinstance(value, int):
            return True
        if isinstance(value, float):
            return value.is_integer()
        return isinstance(value, str) and bool(_INTEGER.match(value))
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMBER.match(value))


def default_value(field: Field, tz: tzinfo | None = None, now: datetime | None = None) -> str | int | float:
    """Value stored for a field that was not supplied when creating a record."""
    if field.value is not None and field.value != "":
        return coerce_value(field.value, field, tz, now)
    if field.type == FieldType.DATE:
        return ZERO_DATE
    if field.type == FieldType.DATETIME:
        return ZERO_DATETIME
    if field.type.is_numeric:
        return coerce_value(None, field, tz, now)
    return ""


def filter_fields(values: Mapping[Any, Any], fields: Iterable[Field]) -> dict[str, Any]:
    """Keep only the entries that name one of the given fields.

    Keys are matched case-insensitively (an exact match is preferred) and
    replaced by the canonical field name. Unknown keys are dropped; when two
    keys name the same field, the later one wins.

    Args:
        values: Input values keyed by field name.
        fields: The fields of the target database or collection.

    Returns:
        Values keyed by canonical field name.
    """
    exact: set[str] = set()
    folded: dict[str, str] = {}
    for field in fields:
        exact.add(field.name)
        folded.setdefault(field.name.lower(), field.name)

    result: dict[str, Any] = {}
    for key, value in values.items():
        if not isinstance(key, str):
            continue
        name = key if key in exact else folded.get(key.lower())
        if name is None:
            continue
        result.pop(name, None)
        result[name] = value
    return result
