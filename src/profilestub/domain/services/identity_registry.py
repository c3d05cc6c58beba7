"""Identity registry for IDs and names consumed during normalization.

Every uniqueness scope (databases, collections, the names of one database's
collections, the fields of one database, ...) is identified by a string
label such as ``database``, ``collection_name_3`` or ``field_name_3.12``.
Labels double as the identifiers used in error messages, so they are part
of the observable behavior.
"""

import re
from types import MappingProxyType
from typing import Any, Mapping

from profilestub.core.exceptions import StructureError

# Pattern for valid database, collection and field names
NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

# 'ID' values may be integers or decimal integer strings
_INTEGER_STRING = re.compile(r"^\s*\+?[0-9]+\s*$")


def database_scope() -> str:
    return "database"


def database_name_scope() -> str:
    return "database_name"


def collection_scope() -> str:
    return "collection"


def collection_name_scope(database_key: int | str) -> str:
    return f"collection_name_{database_key}"


def field_scope(database_id: int) -> str:
    return f"field_{database_id}"


def field_name_scope(database_id: int, collection_id: int | None = None) -> str:
    if collection_id is None:
        return f"field_name_{database_id}"
    return f"field_name_{database_id}.{collection_id}"


def parse_positive_id(value: Any) -> int | None:
    """Interpret a value as a positive integer ID.

    Args:
        value: An int, an integral float or a decimal integer string.

    Returns:
        The ID, or None if the value is not a positive integer.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    elif isinstance(value, str) and _INTEGER_STRING.match(value):
        result = int(value)
    else:
        return None
    return result if result >= 1 else None


class IdentityRegistry:
    """Tracks consumed IDs and names per scope and issues new ones.

    A registry is created fresh for each normalization run. After the run
    it is only read, through ``snapshot()`` and the lookup methods.

    Auto-assigned IDs are ``max(consumed) + 1`` so that assignment is
    deterministic and never reuses an ID that was reserved explicitly.
    """

    def __init__(self) -> None:
        self._ids: dict[str, set[int]] = {}
        self._names: dict[str, set[str]] = {}

    def reserve_id(self, scope: str, requested_id: Any = None, in_key: bool = False) -> int:
        """Reserve an ID in a scope.

        Args:
            scope: Scope label.
            requested_id: Explicitly requested ID; None to auto-assign.
            in_key: Whether the request came from a list key rather than an
                'ID' property (only changes the error message).

        Returns:
            The reserved ID.

        Raises:
            StructureError: If the requested ID is illegal or already consumed.
        """
        consumed = self._ids.setdefault(scope, set())
        if requested_id is None:
            new_id = max(consumed, default=0) + 1
            consumed.add(new_id)
            return new_id

        new_id = parse_positive_id(requested_id)
        if new_id is None:
            raise StructureError(f"'ID' property for {scope} is not a positive integer.")
        if self.is_id_reserved(scope, new_id):
            suffix = " (in array key)" if in_key else ""
            raise StructureError(f"ID {new_id}{suffix} was already seen before.")
        consumed.add(new_id)
        return new_id

    def reserve_name(
        self,
        scope: str,
        requested_name: Any = None,
        fallback_prefix: str | None = None,
        id: int | None = None,
        in_key: bool = False,
    ) -> str:
        """Reserve a name in a scope.

        Without a requested name, ``fallback_prefix + id`` is synthesized.
        If the prefix ends in a digit an underscore is added first; while
        the synthesized name is taken, more underscores are inserted before
        the numeric suffix (``Collection35`` -> ``Collection_35``).

        Args:
            scope: Scope label.
            requested_name: Explicitly requested name, or None.
            fallback_prefix: Prefix for a synthesized name.
            id: ID used as the numeric suffix of a synthesized name.
            in_key: Whether the request came from a list key.

        Returns:
            The reserved name.

        Raises:
            StructureError: If the requested name is illegal or already consumed.
        """
        consumed = self._names.setdefault(scope, set())
        if requested_name is None:
            if fallback_prefix is None or id is None:
                raise ValueError("A fallback prefix and an ID are required to synthesize a name")
            prefix = fallback_prefix
            if prefix[-1:].isdigit():
                prefix += "_"
            while self.is_name_reserved(scope, f"{prefix}{id}"):
                prefix += "_"
            name = f"{prefix}{id}"
            consumed.add(name)
            return name

        if not isinstance(requested_name, str) or not NAME_PATTERN.match(requested_name):
            raise StructureError(f"Name '{requested_name}' is not a legal name.")
        if self.is_name_reserved(scope, requested_name):
            suffix = " (in array key)" if in_key else ""
            raise StructureError(f"Name '{requested_name}'{suffix} was already seen before.")
        consumed.add(requested_name)
        return requested_name

    def is_id_reserved(self, scope: str, id: int) -> bool:
        return id in self._ids.get(scope, ())

    def is_name_reserved(self, scope: str, name: str) -> bool:
        return name in self._names.get(scope, ())

    def ids(self, scope: str) -> list[int]:
        return sorted(self._ids.get(scope, ()))

    def names(self, scope: str) -> list[str]:
        return sorted(self._names.get(scope, ()))

    def rename_scope(self, old: str, new: str) -> None:
        """Move the contents of a scope to a new label.

        Used when a database's provisional key is replaced by its final ID.

        Raises:
            ValueError: If the new label is already in use.
        """
        if old == new:
            return
        for table in (self._ids, self._names):
            if old in table:
                if new in table:
                    raise ValueError(f"Scope '{new}' is already in use")
                table[new] = table.pop(old)

    def snapshot(self) -> Mapping[str, tuple]:
        """Return a read-only view of every scope's consumed values.

        Returns:
            Mapping of scope label to a sorted tuple of IDs or names.
        """
        result: dict[str, tuple] = {}
        for scope in self._ids:
            result[scope] = tuple(self.ids(scope))
        for scope in self._names:
            result[scope] = tuple(self.names(scope))
        return MappingProxyType(result)
