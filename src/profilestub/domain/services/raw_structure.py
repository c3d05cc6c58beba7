"""Classification of raw structure descriptions.

A description is built from plain Python values. Every list level
(databases, collections, fields) may be given as a list, as a mapping
keyed by ID or name, or as a paginated wrapper (a mapping with 'start',
'limit', 'count', 'total' and 'data') around either.
"""

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from profilestub.core.exceptions import StructureError
from profilestub.domain.services.value_coercion import coerce_text

WRAPPER_KEYS = ("start", "limit", "count", "total", "data")

# Decimal integer strings are treated as integer keys
_INTEGER_KEY = re.compile(r"^(0|-?[1-9][0-9]*)$")


class RawKind(str, Enum):
    """Kinds of raw description values."""

    SCALAR = "scalar"
    ENTITY_MAP = "entity_map"
    WRAPPER = "wrapper"


def classify(value: Any) -> RawKind:
    """Classify a raw description value.

    Args:
        value: Any value from a description.

    Returns:
        WRAPPER for a paginated wrapper, ENTITY_MAP for any other mapping
        or list, SCALAR otherwise.
    """
    if isinstance(value, Mapping):
        if all(value.get(key) is not None for key in WRAPPER_KEYS):
            return RawKind.WRAPPER
        return RawKind.ENTITY_MAP
    if isinstance(value, (list, tuple)):
        return RawKind.ENTITY_MAP
    return RawKind.SCALAR


def normalize_key(key: Any) -> Any:
    """Turn decimal integer strings ("0", "17", "-3") into integers."""
    if isinstance(key, str) and _INTEGER_KEY.match(key):
        return int(key)
    return key


def to_mapping(value: list | tuple | Mapping) -> dict[Any, Any]:
    """Turn a list or mapping into a dict with normalized keys.

    Lists are keyed by position. When two keys normalize to the same value,
    the later entry replaces the earlier one.
    """
    if isinstance(value, Mapping):
        items = value.items()
    else:
        items = enumerate(value)
    return {normalize_key(key): item for key, item in items}


def list_entries(value: Any, scope: str) -> list[tuple[Any, Any]]:
    """Get the (key, element) pairs of one list level.

    Args:
        value: The raw list, mapping or paginated wrapper.
        scope: Scope label used in error messages.

    Returns:
        Key/element pairs in order; keys are ints or strings.

    Raises:
        StructureError: If the value is not a list or mapping.
    """
    kind = classify(value)
    if kind == RawKind.WRAPPER:
        value = value["data"]
        kind = classify(value)
    if kind == RawKind.SCALAR:
        raise StructureError(f"'{scope}' structure is not an array.")
    return list(to_mapping(value).items())


def describe(value: Any) -> str:
    """Render a value for an error message."""
    return coerce_text(value)
