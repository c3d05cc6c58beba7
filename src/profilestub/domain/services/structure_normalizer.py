"""Structure normalizer: description -> canonical schema.

The description of databases, collections and fields is loosely keyed.
Each list may be keyed by position, by ID or by name, and entities may also
state their identity in 'ID' and 'name' properties. The normalizer checks
all of this for contradictions and duplicates, assigns every missing ID and
name, and builds a Schema.

Keys are disambiguated per list. An integer key equal to the running
position (0, 1, 2, ...) is positional and carries no identity. Once a key
breaks that sequence, all following integer keys are explicit IDs; the one
exception is a key 0 directly after a string key, which starts a new
positional run. A key 0 directly after an explicit integer key is an
error, as is any negative key.

All explicit IDs and names of a level are reserved before any missing one
is assigned, so assigned values never collide with requested ones.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from profilestub.core.exceptions import StructureError
from profilestub.core.logging import get_logger
from profilestub.domain.entities.schema import (
    Collection,
    Database,
    Field,
    FieldType,
    Schema,
)
from profilestub.domain.services.identity_registry import (
    IdentityRegistry,
    collection_name_scope,
    collection_scope,
    database_name_scope,
    database_scope,
    field_name_scope,
    field_scope,
    parse_positive_id,
)
from profilestub.domain.services.raw_structure import (
    describe,
    list_entries,
    to_mapping,
)
from profilestub.domain.services.value_coercion import is_valid_default

logger = get_logger(__name__)

# Properties holding identity; everything else on a field is kept
IDENTITY_PROPERTIES = frozenset({"ID", "id", "name"})


@dataclass
class _Entry:
    """One checked element of a list level."""

    key: int | str
    positional: bool
    properties: dict[Any, Any]
    id: int | None = None
    name: str | None = None


def _loose_id(value: Any) -> Any:
    """Compare IDs from different sources as integers where possible."""
    parsed = parse_positive_id(value)
    return parsed if parsed is not None else value


class StructureNormalizer:
    """Normalizes one structure description.

    Create a new normalizer (and so a new identity registry) per run.
    """

    def __init__(self) -> None:
        self.registry = IdentityRegistry()

    def normalize(self, description: Any) -> Schema:
        """Check a description and build the canonical schema.

        Args:
            description: Databases as a list, a mapping or a paginated
                wrapper. See the module docstring for the keying rules.

        Returns:
            The normalized schema, with a snapshot of the registry.

        Raises:
            StructureError: If the description is malformed or contradictory.
        """
        schema = Schema()
        databases, _ = self._check_entries(description, database_scope(), database_name_scope())

        # Collections can state their database's ID, so they are checked
        # before any database ID is assigned.
        collections_per_database: list[list[_Entry]] = []
        for position, database in enumerate(databases):
            collections: list[_Entry] = []
            raw_collections = database.properties.get("collections")
            if raw_collections is not None:
                collections, stated_database_id = self._check_entries(
                    raw_collections,
                    collection_scope(),
                    self._provisional_scope(position),
                    shared_property="database",
                )
                if stated_database_id is not None:
                    self._reconcile_database_id(database, stated_database_id)
            collections_per_database.append(collections)

        for position, database in enumerate(databases):
            database_id = self._assign_id(database, database_scope())
            name = self._assign_name(database, database_name_scope(), "Database", database_id)
            self.registry.rename_scope(
                self._provisional_scope(position), collection_name_scope(database_id)
            )
            schema.databases[database_id] = Database(
                id=database_id,
                name=name,
                extra=self._extra_properties(database.properties, ("fields", "collections")),
            )
            database.id = database_id

        for database, collections in zip(databases, collections_per_database):
            for collection in collections:
                collection_id = self._assign_id(collection, collection_scope())
                name = self._assign_name(
                    collection, collection_name_scope(database.id), "Collection", collection_id
                )
                collection.id = collection_id
                schema.collections[collection_id] = Collection(
                    id=collection_id,
                    name=name,
                    database_id=database.id,
                    extra=self._extra_properties(collection.properties, ("fields",)),
                )
                schema.databases[database.id].collection_ids.append(collection_id)

        for database, collections in zip(databases, collections_per_database):
            self._normalize_fields(schema, database, collections)

        schema.known_values = self.registry.snapshot()
        logger.info(
            "Structure normalized",
            databases=len(schema.databases),
            collections=len(schema.collections),
            fields=len(schema.fields),
        )
        return schema

    @staticmethod
    def _provisional_scope(position: int) -> str:
        return collection_name_scope(f"#{position}")

    def _reconcile_database_id(self, database: _Entry, stated_id: Any) -> None:
        """Check or adopt the database ID stated inside its collections."""
        if database.id is None and (database.positional or isinstance(database.key, str)):
            adopted = parse_positive_id(stated_id)
            if adopted is None:
                raise StructureError(
                    f"'database' property ({describe(stated_id)}) for collection is not a positive integer."
                )
            if self.registry.is_id_reserved(database_scope(), adopted):
                raise StructureError(f"Database ID {adopted} was already seen before.")
            database.id = self.registry.reserve_id(database_scope(), adopted)
            return

        database_id = database.id if database.id is not None else database.key
        if _loose_id(stated_id) != database_id:
            raise StructureError(
                f"Database ID {describe(stated_id)} set inside 'database' property of "
                f"collection differs from set ID {database_id}."
            )

    def _normalize_fields(self, schema: Schema, database: _Entry, collections: list[_Entry]) -> None:
        database_id = database.id
        ids_scope = field_scope(database_id)

        database_fields: list[_Entry] = []
        raw_fields = database.properties.get("fields")
        if raw_fields is not None:
            database_fields, _ = self._check_entries(
                raw_fields, ids_scope, field_name_scope(database_id), name_required=True
            )
        collection_fields: list[list[_Entry]] = []
        for collection in collections:
            raw_fields = collection.properties.get("fields")
            entries: list[_Entry] = []
            if raw_fields is not None:
                entries, _ = self._check_entries(
                    raw_fields,
                    ids_scope,
                    field_name_scope(database_id, collection.id),
                    name_required=True,
                )
            collection_fields.append(entries)

        for entry in database_fields:
            field = self._build_field(entry, ids_scope, field_name_scope(database_id), database_id, None)
            schema.fields[(database_id, field.id)] = field
            schema.databases[database_id].field_ids.append(field.id)

        for collection, entries in zip(collections, collection_fields):
            names_scope = field_name_scope(database_id, collection.id)
            for entry in entries:
                field = self._build_field(entry, ids_scope, names_scope, database_id, collection.id)
                schema.fields[(database_id, field.id)] = field
                schema.collections[collection.id].field_ids.append(field.id)

    def _build_field(
        self,
        entry: _Entry,
        ids_scope: str,
        names_scope: str,
        database_id: int,
        collection_id: int | None,
    ) -> Field:
        field_id = self._assign_id(entry, ids_scope)
        name = self._assign_name(entry, names_scope, "Field", field_id)
        properties = entry.properties

        field_type = properties.get("type")
        if not field_type or field_type == "0":
            raise StructureError("Field has no 'type' set.")
        if not isinstance(field_type, str) or field_type not in FieldType._value2member_map_:
            raise StructureError(f"Unknown field type {json.dumps(field_type, default=str)}.")
        field_type = FieldType(field_type)

        value = properties.get("value")
        if field_type.is_numeric:
            if value is None:
                raise StructureError("Integer/float field has no 'value' set.")
            if not is_valid_default(value, field_type):
                raise StructureError("Integer/float field has an illegal 'value' property.")
        elif value is not None and not isinstance(value, str):
            raise StructureError(f"{field_type.value} field has a non-string 'value' property.")
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)

        return Field(
            id=field_id,
            name=name,
            type=field_type,
            database_id=database_id,
            collection_id=collection_id,
            value=value,
            extra=self._extra_properties(properties, ("type", "value")),
        )

    @staticmethod
    def _extra_properties(properties: dict[Any, Any], exclude: tuple[str, ...]) -> dict[str, Any]:
        return {
            key: value
            for key, value in properties.items()
            if key not in IDENTITY_PROPERTIES and key not in exclude
        }

    def _assign_id(self, entry: _Entry, scope: str) -> int:
        """Get an entry's ID: explicit, from its key, or newly assigned."""
        if entry.id is not None:
            return entry.id
        if not entry.positional and isinstance(entry.key, int):
            return entry.key
        new_id = self.registry.reserve_id(scope)
        logger.debug("ID assigned", scope=scope, id=new_id)
        return new_id

    def _assign_name(self, entry: _Entry, scope: str, prefix: str, entity_id: int) -> str:
        """Get an entry's name: explicit, from its key, or newly assigned."""
        if entry.name is not None:
            return entry.name
        if isinstance(entry.key, str):
            return entry.key
        name = self.registry.reserve_name(scope, fallback_prefix=prefix, id=entity_id)
        logger.debug("Name assigned", scope=scope, name=name)
        return name

    def _check_entries(
        self,
        raw: Any,
        ids_scope: str,
        names_scope: str,
        name_required: bool = False,
        shared_property: str | None = None,
    ) -> tuple[list[_Entry], Any]:
        """Check keys, IDs and names of one list level and reserve them.

        Args:
            raw: The raw list level.
            ids_scope: Scope label for IDs.
            names_scope: Scope label for names.
            name_required: Whether elements keyed by integers need a 'name'.
            shared_property: Property that, when present, must have the same
                value in every element; it is removed from the elements.

        Returns:
            The checked entries, and the shared property value (None if no
            element had it).

        Raises:
            StructureError: On the first problem found.
        """
        entries: list[_Entry] = []
        shared_value: Any = None
        previous_key: Any = None
        positional_index = 0

        for key, element in list_entries(raw, ids_scope):
            if not isinstance(element, (Mapping, list, tuple)):
                raise StructureError(
                    f"Non-array value '{describe(element)}' found inside what is "
                    "supposed to be a list of elements."
                )
            properties = to_mapping(element)

            positional = isinstance(key, int) and key == positional_index >= 0
            if positional:
                positional_index += 1
            elif isinstance(key, int) and key == 0:
                if isinstance(previous_key, int):
                    raise StructureError("Explicitly assigned key 0 is not a legal ID.")
                positional = True
                positional_index = 1
            else:
                positional_index = -1

            entry = _Entry(key=key, positional=positional, properties=properties)

            requested_id = properties.get("ID", properties.get("id"))
            if requested_id is not None:
                if parse_positive_id(requested_id) is None:
                    raise StructureError(
                        f"'ID' property for {ids_scope} {key} is not a positive integer."
                    )
                entry.id = self.registry.reserve_id(ids_scope, requested_id)

            requested_name = properties.get("name")
            if requested_name is not None:
                entry.name = self.registry.reserve_name(names_scope, requested_name)

            if isinstance(key, str):
                if entry.name is not None:
                    if key != entry.name:
                        raise StructureError(f"Key '{key}' and name '{entry.name}' differ.")
                else:
                    self.registry.reserve_name(names_scope, key, in_key=True)
            elif key >= 0:
                if name_required and entry.name is None:
                    raise StructureError(f"'name' property is required for {ids_scope} {key}.")
                if not positional:
                    if entry.id is not None:
                        if key != entry.id:
                            raise StructureError(f"Key {key} and ID {entry.id} differ.")
                    else:
                        self.registry.reserve_id(ids_scope, key, in_key=True)
            else:
                raise StructureError(f"Key {key} is a negative integer.")

            if shared_property is not None and properties.get(shared_property) is not None:
                value = properties.pop(shared_property)
                if shared_value is not None and _loose_id(value) != _loose_id(shared_value):
                    raise StructureError(
                        f"'{shared_property}' property ({describe(value)}) was already seen "
                        f"before, with a different value ({describe(shared_value)})."
                    )
                shared_value = value

            for property_key in properties:
                if isinstance(property_key, int):
                    raise StructureError(
                        f"Numeric property {property_key} found inside '{ids_scope}' "
                        "element; the structure is likely malformed."
                    )

            entries.append(entry)
            previous_key = key

        return entries, shared_value


def normalize_structure(description: Any) -> Schema:
    """Normalize a structure description with a fresh identity registry.

    Args:
        description: Databases as a list, a mapping or a paginated wrapper.

    Returns:
        The canonical schema.

    Raises:
        StructureError: If the description is malformed or contradictory.
    """
    return StructureNormalizer().normalize(description)
