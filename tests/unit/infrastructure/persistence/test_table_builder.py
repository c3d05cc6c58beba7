"""Unit tests for TableBuilder."""
import pytest

from profilestub.domain.entities.schema import Field, FieldType
from profilestub.domain.services.structure_normalizer import normalize_structure
from profilestub.infrastructure.persistence.database import DatabaseManager
from profilestub.infrastructure.persistence.table_builder import (
    PROFILE_LOOKUP_TABLE,
    SUBPROFILE_LOOKUP_TABLE,
    TableBuilder,
)


def _field(field_id, field_type, value=None):
    return Field(id=field_id, name=f"F{field_id}", type=field_type, database_id=1, value=value)


def test_table_names():
    """Test generating table names from IDs."""
    assert TableBuilder.profile_table_name(3) == "profile_3"
    assert TableBuilder.subprofile_table_name(7) == "subprofile_7"
    assert TableBuilder.column_name(_field(12, FieldType.TEXT)) == "field_12"


def test_build_column_def_text():
    """Test building a text column definition."""
    assert TableBuilder.build_column_def(_field(1, FieldType.TEXT)) == '"field_1" TEXT COLLATE NOCASE'


def test_build_column_def_text_default():
    """Test that text defaults are quoted."""
    col_def = TableBuilder.build_column_def(_field(1, FieldType.TEXT, "it's"))
    assert col_def == "\"field_1\" TEXT COLLATE NOCASE DEFAULT 'it''s'"


def test_build_column_def_integer():
    """Test building an integer column definition."""
    col_def = TableBuilder.build_column_def(_field(2, FieldType.INTEGER, "-1"))
    assert col_def == '"field_2" INTEGER NOT NULL DEFAULT -1'


def test_build_column_def_float():
    """Test building a float column definition."""
    col_def = TableBuilder.build_column_def(_field(3, FieldType.FLOAT, "2.5"))
    assert col_def == '"field_3" REAL NOT NULL DEFAULT 2.5'


def test_build_column_def_date():
    """Test that date columns store text."""
    assert TableBuilder.build_column_def(_field(4, FieldType.EMPTY_DATETIME)) == '"field_4" TEXT'


def test_build_profile_table_ddl():
    """Test building the CREATE TABLE statement for profiles."""
    ddl = TableBuilder.build_profile_table_ddl(5, [_field(1, FieldType.EMAIL)])
    assert ddl.startswith('CREATE TABLE "profile_5" (')
    assert '"_pid" INTEGER PRIMARY KEY' in ddl
    assert '"_secret" TEXT NOT NULL' in ddl
    assert '"_removed" TEXT' in ddl
    assert '"field_1" TEXT COLLATE NOCASE' in ddl


def test_build_subprofile_table_ddl():
    """Test building the CREATE TABLE statement for subprofiles."""
    ddl = TableBuilder.build_subprofile_table_ddl(8, [])
    assert ddl.startswith('CREATE TABLE "subprofile_8" (')
    assert '"_spid" INTEGER PRIMARY KEY' in ddl
    assert '"_pid" INTEGER NOT NULL' in ddl


def test_build_index_ddl():
    assert TableBuilder.build_index_ddl(8) == (
        'CREATE INDEX "idx_subprofile_8_pid" ON "subprofile_8"("_pid");'
    )


@pytest.fixture
def database(settings):
    manager = DatabaseManager(settings)
    yield manager
    manager.close()


def test_create_and_drop_tables(database):
    """Test that tables are created for every database and collection."""
    schema = normalize_structure({
        "Main": {
            "fields": {"Email": {"type": "email"}},
            "collections": {"Orders": {"fields": {"Total": {"type": "float", "value": 0}}}},
        },
    })
    TableBuilder.create_tables(database.engine, schema)

    names = TableBuilder.table_names(schema)
    assert names == [PROFILE_LOOKUP_TABLE, SUBPROFILE_LOOKUP_TABLE, "profile_1", "subprofile_1"]
    for name in names:
        assert TableBuilder.table_exists(database.engine, name)

    TableBuilder.drop_tables(database.engine, schema)
    for name in names:
        assert not TableBuilder.table_exists(database.engine, name)
