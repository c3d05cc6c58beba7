"""Simulated marketing-database API.

SimulatedApi is what test suites instantiate: it normalizes a structure
description once, creates the record tables for it and then offers the
profile and subprofile operations of the emulated API. Field values are
coerced to their field types before they are stored.
"""

import secrets
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Mapping

from profilestub.core.config import Settings, get_settings
from profilestub.core.exceptions import NotFoundError
from profilestub.core.logging import LoggingContext, get_logger
from profilestub.domain.entities.record import Profile, Subprofile
from profilestub.domain.entities.schema import Field, Schema
from profilestub.domain.services.date_parser import current_time, format_datetime
from profilestub.domain.services.structure_normalizer import normalize_structure
from profilestub.domain.services.value_coercion import (
    coerce_value,
    default_value,
    filter_fields,
)
from profilestub.infrastructure.persistence.database import DatabaseManager
from profilestub.infrastructure.persistence.repositories import RecordRepository
from profilestub.infrastructure.persistence.table_builder import TableBuilder

logger = get_logger(__name__)

# 112 bits, rendered as 28 hex characters
SECRET_BYTES = 14

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def generate_secret() -> str:
    """Generate a record secret: 28 lowercase hex characters."""
    return secrets.token_hex(SECRET_BYTES)


class SimulatedApi:
    """In-process stand-in for the marketing-database API.

    Reads and writes share one connection and are serialized by a lock, so
    an instance can be used from several threads.

    Example:
        api = SimulatedApi({"Test": {"fields": {"Email": {"type": "email"}}}})
        database_id = api.get_member_id("Test")
        profile_id = api.create_profile(database_id, {"email": "a@b.com"})
    """

    def __init__(
        self,
        description: Any = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        database: DatabaseManager | None = None,
    ) -> None:
        """Normalize a structure description and create its tables.

        Args:
            description: Databases, collections and fields to emulate.
            settings: Settings to use instead of the environment's.
            clock: Returns the current moment; defaults to the system clock.
            database: Database manager to use instead of a new one.

        Raises:
            StructureError: If the description cannot be normalized.
        """
        self.settings = settings or get_settings()
        self.timezone = self.settings.tzinfo
        self._clock = clock
        self.schema: Schema = normalize_structure(description if description is not None else [])
        self.database = database or DatabaseManager(self.settings)
        self.update_log: list[str] = []
        self._lock = threading.Lock()
        self.reset()

    # Housekeeping

    def now(self) -> datetime:
        """Current moment in the configured timezone."""
        moment = self._clock() if self._clock is not None else current_time(self.timezone)
        return moment.astimezone(self.timezone)

    def _timestamp(self) -> str:
        return format_datetime(self.now(), self.timezone)

    def _modified_after(self, previous: str) -> str:
        """Timestamp for an update, always later than the stored ``previous``.

        Timestamps have one-second resolution, so an update within the
        second of the last change is stamped one second after it.
        """
        timestamp = self._timestamp()
        if timestamp > previous:
            return timestamp
        following = datetime.strptime(previous, TIMESTAMP_FORMAT) + timedelta(seconds=1)
        return following.strftime(TIMESTAMP_FORMAT)

    def reset(self) -> None:
        """Drop and recreate all record tables, leaving no records."""
        with self._lock:
            TableBuilder.drop_tables(self.database.engine, self.schema)
            TableBuilder.create_tables(self.database.engine, self.schema)

    def reset_update_log(self) -> None:
        self.update_log = []

    def close(self) -> None:
        self.database.close()

    # Schema lookups

    def get_databases_structure(self) -> dict[int, dict[str, Any]]:
        """Get the normalized structure, every list keyed by ID."""
        return self.schema.to_dict()

    def get_known_values(self) -> Mapping[str, tuple]:
        """Get the IDs and names consumed per scope during normalization."""
        return self.schema.known_values

    def get_member_id(self, name: str, database_id: int | None = None) -> int:
        """Get a database ID by name, or a collection ID by name within a database.

        Returns:
            The ID; 0 if not found.
        """
        return self.schema.member_id(name, database_id)

    def _database_fields(self, database_id: int) -> list[Field]:
        if self.schema.get_database(database_id) is None:
            raise NotFoundError("Database", database_id)
        return self.schema.fields_for_database(database_id)

    def _collection_fields(self, collection_id: int) -> list[Field]:
        if self.schema.get_collection(collection_id) is None:
            raise NotFoundError("Collection", collection_id)
        return self.schema.fields_for_collection(collection_id)

    def _coerce(self, values: Mapping[Any, Any], fields: list[Field]) -> dict[str, Any]:
        """Filter input values down to known fields and coerce them."""
        by_name = {field.name: field for field in fields}
        now = self.now()
        return {
            name: coerce_value(value, by_name[name], self.timezone, now)
            for name, value in filter_fields(values, fields).items()
        }

    def _with_defaults(self, values: dict[str, Any], fields: list[Field]) -> dict[str, Any]:
        now = self.now()
        return {
            field.name: (
                values[field.name]
                if field.name in values
                else default_value(field, self.timezone, now)
            )
            for field in fields
        }

    # Profiles

    def create_profile(self, database_id: int, fields: Mapping[Any, Any] | None = None) -> int:
        """Create a profile.

        Args:
            database_id: The database ID.
            fields: Values keyed by field name (case insensitive); unknown
                names are ignored and missing fields get their defaults.

        Returns:
            The new profile ID.

        Raises:
            NotFoundError: If the database does not exist.
        """
        schema_fields = self._database_fields(database_id)
        values = self._with_defaults(self._coerce(fields or {}, schema_fields), schema_fields)
        with self._lock, LoggingContext(database_id=database_id), self.database.begin() as conn:
            profile_id = RecordRepository(conn).insert_profile(
                database_id, schema_fields, values, generate_secret(), self._timestamp()
            )
        self.update_log.append(f"POST database/{database_id}/profiles")
        return profile_id

    def update_profile_fields(self, profile_id: int, fields: Mapping[Any, Any]) -> None:
        """Merge field values into a profile; removed profiles can be updated too.

        Raises:
            NotFoundError: If the profile does not exist.
        """
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            database_id = repository.database_id_for_profile(profile_id)
            if database_id is None:
                raise NotFoundError("Profile", profile_id)
            schema_fields = self.schema.fields_for_database(database_id)
            current = repository.get_profile(database_id, profile_id, schema_fields)
            if current is None:
                raise NotFoundError("Profile", profile_id)
            values = self._coerce(fields, schema_fields)
            repository.update_profile(
                database_id, profile_id, schema_fields, values, self._modified_after(current.modified)
            )
        self.update_log.append(f"PUT profile/{profile_id}/fields")

    def remove_profile(self, profile_id: int) -> bool:
        """Mark a profile removed. Removing twice, or an unknown ID, is not an error.

        When ``cascade_profile_removal`` is set, the profile's subprofiles
        are removed along with it.

        Returns:
            True if the profile was active before this call.
        """
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            database_id = repository.database_id_for_profile(profile_id)
            removed = False
            if database_id is not None:
                timestamp = self._timestamp()
                removed = repository.mark_profile_removed(database_id, profile_id, timestamp)
                if removed and self.settings.cascade_profile_removal:
                    database = self.schema.databases[database_id]
                    for collection_id in database.collection_ids:
                        repository.mark_subprofiles_of_profile_removed(
                            collection_id, profile_id, timestamp
                        )
        self.update_log.append(f"DELETE profile/{profile_id}")
        logger.info("Profile removal requested", profile_id=profile_id, removed=removed)
        return removed

    def fetch_profile(self, profile_id: int) -> Profile | None:
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            database_id = repository.database_id_for_profile(profile_id)
            if database_id is None:
                return None
            return repository.get_profile(
                database_id, profile_id, self.schema.fields_for_database(database_id)
            )

    def fetch_profiles(
        self,
        database_id: int,
        filters: Mapping[Any, Any] | None = None,
        start: int = 0,
        limit: int | None = None,
        include_removed: bool = True,
    ) -> list[Profile]:
        """List a database's profiles in ID order.

        Args:
            database_id: The database ID.
            filters: Field values (coerced like input) that profiles must equal.
            start: Number of matching profiles to skip.
            limit: Maximum number to return; defaults to the configured page limit.
            include_removed: Whether removed profiles are listed.

        Raises:
            NotFoundError: If the database does not exist.
        """
        schema_fields = self._database_fields(database_id)
        if limit is None:
            limit = self.settings.default_page_limit
        if start < 0 or limit <= 0:
            return []
        with self._lock, self.database.begin() as conn:
            return RecordRepository(conn).list_profiles(
                database_id,
                schema_fields,
                self._coerce(filters or {}, schema_fields),
                start,
                limit,
                include_removed,
            )

    def count_profiles(self, database_id: int, include_removed: bool = True) -> int:
        self._database_fields(database_id)
        with self._lock, self.database.begin() as conn:
            return RecordRepository(conn).count_profiles(database_id, include_removed)

    # Subprofiles

    def create_subprofile(
        self, profile_id: int, collection_id: int, fields: Mapping[Any, Any] | None = None
    ) -> int:
        """Create a subprofile for a profile.

        Args:
            profile_id: The owning profile.
            collection_id: The collection ID.
            fields: Values keyed by field name, as for create_profile().

        Returns:
            The new subprofile ID.

        Raises:
            NotFoundError: If the collection or profile does not exist, or the
                collection is not in the profile's database.
        """
        schema_fields = self._collection_fields(collection_id)
        values = self._with_defaults(self._coerce(fields or {}, schema_fields), schema_fields)
        with self._lock, LoggingContext(collection_id=collection_id), self.database.begin() as conn:
            repository = RecordRepository(conn)
            database_id = repository.database_id_for_profile(profile_id)
            if database_id is None:
                raise NotFoundError("Profile", profile_id)
            if self.schema.database_id_for_collection(collection_id) != database_id:
                raise NotFoundError("Collection", collection_id)
            subprofile_id = repository.insert_subprofile(
                collection_id, profile_id, schema_fields, values, generate_secret(), self._timestamp()
            )
        self.update_log.append(f"POST profile/{profile_id}/subprofiles/{collection_id}")
        return subprofile_id

    def update_subprofile_fields(self, subprofile_id: int, fields: Mapping[Any, Any]) -> None:
        """Merge field values into a subprofile.

        Raises:
            NotFoundError: If the subprofile does not exist.
        """
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            collection_id = repository.collection_id_for_subprofile(subprofile_id)
            if collection_id is None:
                raise NotFoundError("Subprofile", subprofile_id)
            schema_fields = self.schema.fields_for_collection(collection_id)
            current = repository.get_subprofile(collection_id, subprofile_id, schema_fields)
            if current is None:
                raise NotFoundError("Subprofile", subprofile_id)
            values = self._coerce(fields, schema_fields)
            repository.update_subprofile(
                collection_id,
                subprofile_id,
                schema_fields,
                values,
                self._modified_after(current.modified),
            )
        self.update_log.append(f"PUT subprofile/{subprofile_id}/fields")

    def remove_subprofile(self, subprofile_id: int) -> bool:
        """Mark a subprofile removed. Removing twice, or an unknown ID, is not an error.

        Returns:
            True if the subprofile was active before this call.
        """
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            collection_id = repository.collection_id_for_subprofile(subprofile_id)
            removed = False
            if collection_id is not None:
                removed = repository.mark_subprofile_removed(
                    collection_id, subprofile_id, self._timestamp()
                )
        self.update_log.append(f"DELETE subprofile/{subprofile_id}")
        logger.info("Subprofile removal requested", subprofile_id=subprofile_id, removed=removed)
        return removed

    def fetch_subprofile(self, subprofile_id: int) -> Subprofile | None:
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            collection_id = repository.collection_id_for_subprofile(subprofile_id)
            if collection_id is None:
                return None
            return repository.get_subprofile(
                collection_id, subprofile_id, self.schema.fields_for_collection(collection_id)
            )

    def fetch_subprofiles(
        self,
        collection_id: int,
        filters: Mapping[Any, Any] | None = None,
        start: int = 0,
        limit: int | None = None,
        include_removed: bool = True,
    ) -> list[Subprofile]:
        """List a collection's subprofiles in ID order.

        Raises:
            NotFoundError: If the collection does not exist.
        """
        schema_fields = self._collection_fields(collection_id)
        if limit is None:
            limit = self.settings.default_page_limit
        if start < 0 or limit <= 0:
            return []
        with self._lock, self.database.begin() as conn:
            return RecordRepository(conn).list_subprofiles(
                collection_id,
                schema_fields,
                self._coerce(filters or {}, schema_fields),
                start,
                limit,
                include_removed,
            )

    def fetch_subprofiles_for_profile(
        self, profile_id: int, collection_id: int, include_removed: bool = True
    ) -> list[Subprofile]:
        """List all subprofiles of one profile in a collection."""
        schema_fields = self._collection_fields(collection_id)
        with self._lock, self.database.begin() as conn:
            repository = RecordRepository(conn)
            total = repository.count_subprofiles(collection_id, include_removed, profile_id)
            return repository.list_subprofiles(
                collection_id,
                schema_fields,
                start=0,
                limit=max(total, 1),
                include_removed=include_removed,
                profile_id=profile_id,
            )

    def count_subprofiles(self, collection_id: int, include_removed: bool = True) -> int:
        self._collection_fields(collection_id)
        with self._lock, self.database.begin() as conn:
            return RecordRepository(conn).count_subprofiles(collection_id, include_removed)
