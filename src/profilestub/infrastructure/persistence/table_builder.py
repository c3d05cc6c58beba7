"""Dynamic table builder for profile and subprofile tables.

Every database gets a ``profile_<id>`` table and every collection a
``subprofile_<id>`` table. Field columns are named after field IDs
(``field_<id>``) because SQLite column names are case insensitive while
field names are not. Two lookup tables map record IDs to their database or
collection and hand out the IDs, so profile IDs are unique across databases
and subprofile IDs across collections.
"""

from sqlalchemy import Engine, text

from profilestub.core.logging import get_logger
from profilestub.domain.entities.schema import Field, FieldType, Schema

logger = get_logger(__name__)


# SQL type mapping for each field type
FIELD_TYPE_TO_SQL = {
    FieldType.TEXT: "TEXT COLLATE NOCASE",
    FieldType.EMAIL: "TEXT COLLATE NOCASE",
    FieldType.INTEGER: "INTEGER NOT NULL",
    FieldType.FLOAT: "REAL NOT NULL",
    FieldType.DATE: "TEXT",
    FieldType.DATETIME: "TEXT",
    FieldType.EMPTY_DATE: "TEXT",
    FieldType.EMPTY_DATETIME: "TEXT",
}

# System columns added to every profile table
PROFILE_SYSTEM_COLUMNS = [
    ("_pid", "INTEGER PRIMARY KEY"),
    ("_secret", "TEXT NOT NULL"),
    ("_created", "TEXT NOT NULL"),
    ("_modified", "TEXT NOT NULL"),
    ("_removed", "TEXT"),
]

# System columns added to every subprofile table
SUBPROFILE_SYSTEM_COLUMNS = [
    ("_spid", "INTEGER PRIMARY KEY"),
    ("_pid", "INTEGER NOT NULL"),
    ("_secret", "TEXT NOT NULL"),
    ("_created", "TEXT NOT NULL"),
    ("_modified", "TEXT NOT NULL"),
    ("_removed", "TEXT"),
]

PROFILE_LOOKUP_TABLE = "profile_db"
SUBPROFILE_LOOKUP_TABLE = "subprofile_coll"

LOOKUP_TABLES_DDL = [
    f'CREATE TABLE "{PROFILE_LOOKUP_TABLE}" (\n'
    '  "profile_id" INTEGER PRIMARY KEY AUTOINCREMENT,\n'
    '  "database_id" INTEGER NOT NULL\n'
    ");",
    f'CREATE TABLE "{SUBPROFILE_LOOKUP_TABLE}" (\n'
    '  "subprofile_id" INTEGER PRIMARY KEY AUTOINCREMENT,\n'
    '  "collection_id" INTEGER NOT NULL\n'
    ");",
]


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class TableBuilder:
    """Builds and creates the record tables for a normalized schema."""

    @classmethod
    def profile_table_name(cls, database_id: int) -> str:
        return f"profile_{database_id}"

    @classmethod
    def subprofile_table_name(cls, collection_id: int) -> str:
        return f"subprofile_{collection_id}"

    @classmethod
    def column_name(cls, field: Field) -> str:
        return f"field_{field.id}"

    @classmethod
    def build_column_def(cls, field: Field) -> str:
        """Build the column definition for a single field.

        Integer and float columns get the field's default value (these
        fields always have one); text columns get it when it is set.

        Args:
            field: The field.

        Returns:
            The column definition.
        """
        parts = [f'"{cls.column_name(field)}"', FIELD_TYPE_TO_SQL[field.type]]

        if field.type == FieldType.INTEGER:
            parts.append(f"DEFAULT {int(field.value or 0)}")
        elif field.type == FieldType.FLOAT:
            parts.append(f"DEFAULT {float(field.value or 0)!r}")
        elif field.value is not None:
            parts.append(f"DEFAULT {_quote_literal(str(field.value))}")

        return " ".join(parts)

    @classmethod
    def _build_ddl(cls, table_name: str, system_columns: list[tuple[str, str]], fields: list[Field]) -> str:
        column_defs = [f'"{col}" {col_type}' for col, col_type in system_columns]
        column_defs.extend(cls.build_column_def(field) for field in fields)
        columns_sql = ",\n  ".join(column_defs)
        return f'CREATE TABLE "{table_name}" (\n  {columns_sql}\n);'

    @classmethod
    def build_profile_table_ddl(cls, database_id: int, fields: list[Field]) -> str:
        """Build the CREATE TABLE statement for a database's profiles.

        Args:
            database_id: The database ID.
            fields: The database's fields.

        Returns:
            The DDL statement as a string.
        """
        return cls._build_ddl(cls.profile_table_name(database_id), PROFILE_SYSTEM_COLUMNS, fields)

    @classmethod
    def build_subprofile_table_ddl(cls, collection_id: int, fields: list[Field]) -> str:
        """Build the CREATE TABLE statement for a collection's subprofiles.

        Args:
            collection_id: The collection ID.
            fields: The collection's fields.

        Returns:
            The DDL statement as a string.
        """
        return cls._build_ddl(
            cls.subprofile_table_name(collection_id), SUBPROFILE_SYSTEM_COLUMNS, fields
        )

    @classmethod
    def build_index_ddl(cls, collection_id: int) -> str:
        """Index subprofiles on their profile, for per-profile lookups."""
        table_name = cls.subprofile_table_name(collection_id)
        return f'CREATE INDEX "idx_{table_name}_pid" ON "{table_name}"("_pid");'

    @classmethod
    def table_names(cls, schema: Schema) -> list[str]:
        """All record table names for a schema, lookup tables first."""
        names = [PROFILE_LOOKUP_TABLE, SUBPROFILE_LOOKUP_TABLE]
        names.extend(cls.profile_table_name(database_id) for database_id in schema.databases)
        names.extend(
            cls.subprofile_table_name(collection_id) for collection_id in schema.collections
        )
        return names

    @classmethod
    def create_tables(cls, engine: Engine, schema: Schema) -> None:
        """Create the lookup tables and one table per database and collection.

        Args:
            engine: SQLAlchemy engine.
            schema: The normalized schema.
        """
        statements = list(LOOKUP_TABLES_DDL)
        for database_id in schema.databases:
            statements.append(
                cls.build_profile_table_ddl(database_id, schema.fields_for_database(database_id))
            )
        for collection_id in schema.collections:
            statements.append(
                cls.build_subprofile_table_ddl(
                    collection_id, schema.fields_for_collection(collection_id)
                )
            )
            statements.append(cls.build_index_ddl(collection_id))

        with engine.begin() as conn:
            for ddl in statements:
                conn.execute(text(ddl))
                logger.debug("Table statement executed", ddl=ddl)

        logger.info(
            "Record tables created",
            databases=len(schema.databases),
            collections=len(schema.collections),
        )

    @classmethod
    def drop_tables(cls, engine: Engine, schema: Schema) -> None:
        """Drop all record tables of a schema, if they exist.

        Args:
            engine: SQLAlchemy engine.
            schema: The normalized schema.
        """
        with engine.begin() as conn:
            for table_name in reversed(cls.table_names(schema)):
                conn.execute(text(f'DROP TABLE IF EXISTS "{table_name}";'))

        logger.info("Record tables dropped", tables=len(cls.table_names(schema)))

    @classmethod
    def table_exists(cls, engine: Engine, table_name: str) -> bool:
        """Check if a table already exists.

        Args:
            engine: SQLAlchemy engine.
            table_name: The table name.

        Returns:
            True if table exists, False otherwise.
        """
        check_sql = """
            SELECT name FROM sqlite_master
            WHERE type='table' AND name=:table_name
        """

        with engine.connect() as conn:
            result = conn.execute(text(check_sql), {"table_name": table_name})
            return result.scalar_one_or_none() is not None
