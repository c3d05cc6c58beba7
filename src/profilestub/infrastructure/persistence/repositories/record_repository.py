"""Repository for profile and subprofile records.

Provides the record operations on the dynamically created tables using raw
SQL, since those tables are not mapped to ORM models. Values are expected
to be coerced already; the repository only maps field names to columns.
"""

from typing import Any

from sqlalchemy import Connection, text

from profilestub.core.logging import get_logger
from profilestub.domain.entities.record import Profile, Subprofile
from profilestub.domain.entities.schema import Field
from profilestub.infrastructure.persistence.table_builder import (
    PROFILE_LOOKUP_TABLE,
    SUBPROFILE_LOOKUP_TABLE,
    TableBuilder,
)

logger = get_logger(__name__)


def _columns(fields: list[Field], values: dict[str, Any]) -> dict[str, Any]:
    """Map values keyed by field name to values keyed by column name."""
    by_name = {field.name: field for field in fields}
    return {
        TableBuilder.column_name(by_name[name]): value
        for name, value in values.items()
        if name in by_name
    }


def _where_clause(conditions: list[str]) -> str:
    return f" WHERE {' AND '.join(conditions)}" if conditions else ""


class RecordRepository:
    """Repository for record database operations.

    Works on a connection with an open transaction; the caller decides
    where the transaction starts and ends.
    """

    def __init__(self, connection: Connection) -> None:
        """Initialize the repository with a database connection.

        Args:
            connection: SQLAlchemy connection inside a transaction.
        """
        self.connection = connection

    # Lookups

    def database_id_for_profile(self, profile_id: int) -> int | None:
        result = self.connection.execute(
            text(f'SELECT database_id FROM "{PROFILE_LOOKUP_TABLE}" WHERE profile_id = :id'),
            {"id": profile_id},
        )
        return result.scalar_one_or_none()

    def collection_id_for_subprofile(self, subprofile_id: int) -> int | None:
        result = self.connection.execute(
            text(f'SELECT collection_id FROM "{SUBPROFILE_LOOKUP_TABLE}" WHERE subprofile_id = :id'),
            {"id": subprofile_id},
        )
        return result.scalar_one_or_none()

    # Inserts

    def _insert_row(self, table_name: str, row: dict[str, Any]) -> None:
        params = {f"p{i}": value for i, value in enumerate(row.values())}
        columns = ", ".join(f'"{column}"' for column in row)
        placeholders = ", ".join(f":{param}" for param in params)
        self.connection.execute(
            text(f'INSERT INTO "{table_name}" ({columns}) VALUES ({placeholders})'), params
        )

    def insert_profile(
        self,
        database_id: int,
        fields: list[Field],
        values: dict[str, Any],
        secret: str,
        timestamp: str,
    ) -> int:
        """Insert a new profile.

        Args:
            database_id: The database ID.
            fields: The database's fields.
            values: Coerced values keyed by field name.
            secret: The generated secret.
            timestamp: Creation time, used for created and modified.

        Returns:
            The new profile ID.
        """
        result = self.connection.execute(
            text(f'INSERT INTO "{PROFILE_LOOKUP_TABLE}" (database_id) VALUES (:database_id)'),
            {"database_id": database_id},
        )
        profile_id = result.lastrowid
        row = {
            "_pid": profile_id,
            "_secret": secret,
            "_created": timestamp,
            "_modified": timestamp,
            **_columns(fields, values),
        }
        self._insert_row(TableBuilder.profile_table_name(database_id), row)

        logger.info("Profile inserted", database_id=database_id, profile_id=profile_id)
        return profile_id

    def insert_subprofile(
        self,
        collection_id: int,
        profile_id: int,
        fields: list[Field],
        values: dict[str, Any],
        secret: str,
        timestamp: str,
    ) -> int:
        """Insert a new subprofile.

        Args:
            collection_id: The collection ID.
            profile_id: The owning profile.
            fields: The collection's fields.
            values: Coerced values keyed by field name.
            secret: The generated secret.
            timestamp: Creation time, used for created and modified.

        Returns:
            The new subprofile ID.
        """
        result = self.connection.execute(
            text(f'INSERT INTO "{SUBPROFILE_LOOKUP_TABLE}" (collection_id) VALUES (:collection_id)'),
            {"collection_id": collection_id},
        )
        subprofile_id = result.lastrowid
        row = {
            "_spid": subprofile_id,
            "_pid": profile_id,
            "_secret": secret,
            "_created": timestamp,
            "_modified": timestamp,
            **_columns(fields, values),
        }
        self._insert_row(TableBuilder.subprofile_table_name(collection_id), row)

        logger.info(
            "Subprofile inserted",
            collection_id=collection_id,
            profile_id=profile_id,
            subprofile_id=subprofile_id,
        )
        return subprofile_id

    # Updates

    def _update_row(
        self, table_name: str, key_column: str, key: int, row: dict[str, Any]
    ) -> int:
        params = {f"p{i}": value for i, value in enumerate(row.values())}
        assignments = ", ".join(
            f'"{column}" = :{param}' for column, param in zip(row, params)
        )
        params["key"] = key
        result = self.connection.execute(
            text(f'UPDATE "{table_name}" SET {assignments} WHERE "{key_column}" = :key'), params
        )
        return result.rowcount

    def update_profile(
        self,
        database_id: int,
        profile_id: int,
        fields: list[Field],
        values: dict[str, Any],
        timestamp: str,
    ) -> bool:
        """Merge field values into a profile and set its modified time.

        Returns:
            True if the profile row was found.
        """
        row = {**_columns(fields, values), "_modified": timestamp}
        updated = self._update_row(TableBuilder.profile_table_name(database_id), "_pid", profile_id, row)
        logger.info("Profile updated", profile_id=profile_id, fields=sorted(values))
        return updated == 1

    def update_subprofile(
        self,
        collection_id: int,
        subprofile_id: int,
        fields: list[Field],
        values: dict[str, Any],
        timestamp: str,
    ) -> bool:
        """Merge field values into a subprofile and set its modified time.

        Returns:
            True if the subprofile row was found.
        """
        row = {**_columns(fields, values), "_modified": timestamp}
        updated = self._update_row(
            TableBuilder.subprofile_table_name(collection_id), "_spid", subprofile_id, row
        )
        logger.info("Subprofile updated", subprofile_id=subprofile_id, fields=sorted(values))
        return updated == 1

    # Removal

    def mark_profile_removed(self, database_id: int, profile_id: int, timestamp: str) -> bool:
        """Set a profile's removed time unless it is already set.

        Returns:
            True if the profile was active and is now removed.
        """
        result = self.connection.execute(
            text(
                f'UPDATE "{TableBuilder.profile_table_name(database_id)}" '
                'SET "_removed" = :ts WHERE "_pid" = :id AND "_removed" IS NULL'
            ),
            {"ts": timestamp, "id": profile_id},
        )
        return result.rowcount == 1

    def mark_subprofile_removed(self, collection_id: int, subprofile_id: int, timestamp: str) -> bool:
        """Set a subprofile's removed time unless it is already set.

        Returns:
            True if the subprofile was active and is now removed.
        """
        result = self.connection.execute(
            text(
                f'UPDATE "{TableBuilder.subprofile_table_name(collection_id)}" '
                'SET "_removed" = :ts WHERE "_spid" = :id AND "_removed" IS NULL'
            ),
            {"ts": timestamp, "id": subprofile_id},
        )
        return result.rowcount == 1

    def mark_subprofiles_of_profile_removed(
        self, collection_id: int, profile_id: int, timestamp: str
    ) -> int:
        """Set the removed time on a profile's active subprofiles in one collection.

        Returns:
            The number of subprofiles removed.
        """
        result = self.connection.execute(
            text(
                f'UPDATE "{TableBuilder.subprofile_table_name(collection_id)}" '
                'SET "_removed" = :ts WHERE "_pid" = :id AND "_removed" IS NULL'
            ),
            {"ts": timestamp, "id": profile_id},
        )
        return result.rowcount

    # Reads

    @staticmethod
    def _field_values(row: dict[str, Any], fields: list[Field]) -> dict[str, Any]:
        return {field.name: row[TableBuilder.column_name(field)] for field in fields}

    def _profile_from_row(self, database_id: int, row: dict[str, Any], fields: list[Field]) -> Profile:
        return Profile(
            id=row["_pid"],
            database_id=database_id,
            fields=self._field_values(row, fields),
            secret=row["_secret"],
            created=row["_created"],
            modified=row["_modified"],
            removed=row["_removed"],
        )

    def _subprofile_from_row(
        self, collection_id: int, row: dict[str, Any], fields: list[Field]
    ) -> Subprofile:
        return Subprofile(
            id=row["_spid"],
            collection_id=collection_id,
            profile_id=row["_pid"],
            fields=self._field_values(row, fields),
            secret=row["_secret"],
            created=row["_created"],
            modified=row["_modified"],
            removed=row["_removed"],
        )

    def get_profile(self, database_id: int, profile_id: int, fields: list[Field]) -> Profile | None:
        result = self.connection.execute(
            text(f'SELECT * FROM "{TableBuilder.profile_table_name(database_id)}" WHERE "_pid" = :id'),
            {"id": profile_id},
        )
        row = result.mappings().first()
        return self._profile_from_row(database_id, dict(row), fields) if row is not None else None

    def get_subprofile(
        self, collection_id: int, subprofile_id: int, fields: list[Field]
    ) -> Subprofile | None:
        result = self.connection.execute(
            text(
                f'SELECT * FROM "{TableBuilder.subprofile_table_name(collection_id)}" '
                'WHERE "_spid" = :id'
            ),
            {"id": subprofile_id},
        )
        row = result.mappings().first()
        return self._subprofile_from_row(collection_id, dict(row), fields) if row is not None else None

    @staticmethod
    def _conditions(
        fields: list[Field],
        filters: dict[str, Any],
        include_removed: bool,
        params: dict[str, Any],
    ) -> list[str]:
        conditions = []
        for i, (column, value) in enumerate(_columns(fields, filters).items()):
            conditions.append(f'"{column}" = :f{i}')
            params[f"f{i}"] = value
        if not include_removed:
            conditions.append('"_removed" IS NULL')
        return conditions

    def list_profiles(
        self,
        database_id: int,
        fields: list[Field],
        filters: dict[str, Any] | None = None,
        start: int = 0,
        limit: int = 100,
        include_removed: bool = True,
    ) -> list[Profile]:
        """List a database's profiles in ID order.

        Args:
            database_id: The database ID.
            fields: The database's fields.
            filters: Coerced values keyed by field name that rows must equal.
            start: Number of matching rows to skip.
            limit: Maximum number of rows to return.
            include_removed: Whether removed profiles are included.

        Returns:
            The matching profiles.
        """
        params: dict[str, Any] = {"limit": limit, "offset": start}
        conditions = self._conditions(fields, filters or {}, include_removed, params)
        result = self.connection.execute(
            text(
                f'SELECT * FROM "{TableBuilder.profile_table_name(database_id)}"'
                f'{_where_clause(conditions)} ORDER BY "_pid" LIMIT :limit OFFSET :offset'
            ),
            params,
        )
        return [self._profile_from_row(database_id, dict(row), fields) for row in result.mappings()]

    def list_subprofiles(
        self,
        collection_id: int,
        fields: list[Field],
        filters: dict[str, Any] | None = None,
        start: int = 0,
        limit: int = 100,
        include_removed: bool = True,
        profile_id: int | None = None,
    ) -> list[Subprofile]:
        """List a collection's subprofiles in ID order.

        Args:
            collection_id: The collection ID.
            fields: The collection's fields.
            filters: Coerced values keyed by field name that rows must equal.
            start: Number of matching rows to skip.
            limit: Maximum number of rows to return.
            include_removed: Whether removed subprofiles are included.
            profile_id: Only list subprofiles of this profile.

        Returns:
            The matching subprofiles.
        """
        params: dict[str, Any] = {"limit": limit, "offset": start}
        conditions = self._conditions(fields, filters or {}, include_removed, params)
        if profile_id is not None:
            conditions.append('"_pid" = :profile_id')
            params["profile_id"] = profile_id
        result = self.connection.execute(
            text(
                f'SELECT * FROM "{TableBuilder.subprofile_table_name(collection_id)}"'
                f'{_where_clause(conditions)} ORDER BY "_spid" LIMIT :limit OFFSET :offset'
            ),
            params,
        )
        return [
            self._subprofile_from_row(collection_id, dict(row), fields)
            for row in result.mappings()
        ]

    def count_profiles(self, database_id: int, include_removed: bool = True) -> int:
        conditions = [] if include_removed else ['"_removed" IS NULL']
        result = self.connection.execute(
            text(
                f'SELECT COUNT(*) FROM "{TableBuilder.profile_table_name(database_id)}"'
                f"{_where_clause(conditions)}"
            )
        )
        return result.scalar_one()

    def count_subprofiles(
        self, collection_id: int, include_removed: bool = True, profile_id: int | None = None
    ) -> int:
        params: dict[str, Any] = {}
        conditions = [] if include_removed else ['"_removed" IS NULL']
        if profile_id is not None:
            conditions.append('"_pid" = :profile_id')
            params["profile_id"] = profile_id
        result = self.connection.execute(
            text(
                f'SELECT COUNT(*) FROM "{TableBuilder.subprofile_table_name(collection_id)}"'
                f"{_where_clause(conditions)}"
            ),
            params,
        )
        return result.scalar_one()
