"""Canonical schema entities: databases, collections and fields.

The normalized schema is an arena: every entity is stored once, indexed by
ID, and refers to its parent and children by ID. Field IDs are only unique
within one database, so fields are indexed by ``(database_id, field_id)``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class FieldType(str, Enum):
    """Supported field types."""

    TEXT = "text"
    EMAIL = "email"
    INTEGER = "integer"
    FLOAT = "float"
    DATE = "date"
    DATETIME = "datetime"
    EMPTY_DATE = "empty_date"
    EMPTY_DATETIME = "empty_datetime"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldType.INTEGER, FieldType.FLOAT)

    @property
    def is_date(self) -> bool:
        return self in (FieldType.DATE, FieldType.EMPTY_DATE)

    @property
    def is_datetime(self) -> bool:
        return self in (FieldType.DATETIME, FieldType.EMPTY_DATETIME)


@dataclass
class Field:
    """A field of a database (profile field) or of a collection.

    Attributes:
        id: ID, unique within the owning database.
        name: Name, unique among the fields of its database or collection.
        type: Field type.
        database_id: Owning database.
        collection_id: Owning collection; None for database fields.
        value: Default value. Integer defaults are kept as strings.
        extra: Any other properties from the description, kept verbatim.
    """

    id: int
    name: str
    type: FieldType
    database_id: int
    collection_id: int | None = None
    value: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "type": self.type.value}
        if self.value is not None:
            result["value"] = self.value
        result.update(self.extra)
        return result


@dataclass
class Collection:
    """A collection (subprofile container) inside a database."""

    id: int
    name: str
    database_id: int
    field_ids: list[int] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Database:
    """A database (profile container)."""

    id: int
    name: str
    field_ids: list[int] = field(default_factory=list)
    collection_ids: list[int] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Schema:
    """The canonical, fully identified schema.

    Attributes:
        databases: Databases by ID, in description order.
        collections: Collections by (globally unique) ID.
        fields: Fields by ``(database_id, field_id)``.
        known_values: Read-only snapshot of the identity registry.
    """

    databases: dict[int, Database] = field(default_factory=dict)
    collections: dict[int, Collection] = field(default_factory=dict)
    fields: dict[tuple[int, int], Field] = field(default_factory=dict)
    known_values: Mapping[str, tuple] = field(default_factory=dict)

    def get_database(self, database_id: int) -> Database | None:
        return self.databases.get(database_id)

    def get_collection(self, collection_id: int) -> Collection | None:
        return self.collections.get(collection_id)

    def database_id_for_collection(self, collection_id: int) -> int | None:
        collection = self.collections.get(collection_id)
        return collection.database_id if collection else None

    def fields_for_database(self, database_id: int) -> list[Field]:
        """Get the profile fields of a database, in description order."""
        database = self.databases.get(database_id)
        if database is None:
            return []
        return [self.fields[(database_id, field_id)] for field_id in database.field_ids]

    def fields_for_collection(self, collection_id: int) -> list[Field]:
        """Get the fields of a collection, in description order."""
        collection = self.collections.get(collection_id)
        if collection is None:
            return []
        return [
            self.fields[(collection.database_id, field_id)]
            for field_id in collection.field_ids
        ]

    def member_id(self, name: str, database_id: int | None = None) -> int:
        """Look up an ID by name.

        Args:
            name: Database name, or collection name if database_id is given.
            database_id: Database to look for the collection in.

        Returns:
            The database or collection ID; 0 if there is no such member.
        """
        if database_id is None:
            for database in self.databases.values():
                if database.name == name:
                    return database.id
            return 0
        database = self.databases.get(database_id)
        if database is None:
            return 0
        for collection_id in database.collection_ids:
            if self.collections[collection_id].name == name:
                return collection_id
        return 0

    def to_dict(self) -> dict[int, dict[str, Any]]:
        """Render the normalized structure: every list keyed by ID.

        Returns:
            Databases keyed by ID, each with 'name', 'fields' and
            'collections'; collections carry 'name' and 'fields'.
        """
        result: dict[int, dict[str, Any]] = {}
        for database in self.databases.values():
            collections: dict[int, dict[str, Any]] = {}
            for collection_id in database.collection_ids:
                collection = self.collections[collection_id]
                collections[collection_id] = {
                    "name": collection.name,
                    **collection.extra,
                    "fields": {
                        f.id: f.to_dict() for f in self.fields_for_collection(collection_id)
                    },
                }
            result[database.id] = {
                "name": database.name,
                **database.extra,
                "fields": {f.id: f.to_dict() for f in self.fields_for_database(database.id)},
                "collections": collections,
            }
        return result
