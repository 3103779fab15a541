"""Tests for metadata value objects."""
from datetime import datetime

import pytest

from schemadx.models.metadata import (
    Column,
    Constraint,
    ConstraintType,
    Index,
    MigrationProvenance,
    PrivilegeSet,
    TableMetadata,
    ValidationError,
    normalize_constraint_type,
)


@pytest.mark.parametrize("raw,expected", [
    ("PRIMARY KEY", ConstraintType.PRIMARY_KEY),
    ("foreign_key", ConstraintType.FOREIGN_KEY),
    ("Unique", ConstraintType.UNIQUE),
    (" CHECK ", ConstraintType.CHECK),
    ("NOT NULL", ConstraintType.OTHER),
    ("EXCLUDE", ConstraintType.OTHER),
])
def test_normalize_constraint_type(raw, expected):
    """Test function."""
    assert normalize_constraint_type(raw) == expected


def test_constraint_keeps_raw_type():
    """Test function."""
    constraint = Constraint(name="c", type="NOT NULL", columns=["a"])
    assert constraint.type == ConstraintType.OTHER
    assert constraint.raw_type == "NOT NULL"

    keyed = Constraint(name="pk", type=ConstraintType.PRIMARY_KEY, columns=["id"])
    assert keyed.raw_type is None


def test_keyed_constraint_needs_columns():
    """Test function."""
    with pytest.raises(ValidationError):
        Constraint(name="fk", type="FOREIGN KEY", columns=[])


def test_unnamed_constraint_display_name():
    """Test function."""
    assert Constraint(type="CHECK", definition="CHECK (a > 0)").display_name == "unnamed"


def test_primary_index_must_be_unique():
    """Test function."""
    with pytest.raises(ValidationError):
        Index(name="t_pkey", columns=["id"], primary=True, unique=False)


def test_index_signature():
    """Test function."""
    assert Index(name="i", columns=["a", "b"], unique=True).signature() == \
        "UNIQUE INDEX USING btree (a, b)"
    assert Index(name="i", columns=["a"], definition="CREATE INDEX i ON t (a)").signature() == \
        "CREATE INDEX i ON t (a)"


def test_privilege_set_normalizes():
    """Test function."""
    privileges = PrivilegeSet(granted_privileges=["select", "SELECT", " insert "])
    assert privileges.granted_privileges == ["SELECT", "INSERT"]
    assert privileges.has("Insert") is True
    assert privileges.has("DELETE") is False


def test_privilege_set_rejects_overlap():
    """Test function."""
    with pytest.raises(ValidationError):
        PrivilegeSet(granted_privileges=["SELECT"], missing_privileges=["select"])


def test_column_ordinal_must_be_positive():
    """Test function."""
    with pytest.raises(ValidationError):
        Column(name="id", ordinal_position=0, data_type="integer", nullable=False)


def test_duplicate_ordinals_rejected(column_factory):
    """Test function."""
    with pytest.raises(ValidationError):
        TableMetadata(schema_name="public", table_name="t", columns=[
            column_factory(name="a", ordinal_position=1),
            column_factory(name="b", ordinal_position=1),
        ])


def test_camel_case_aliases():
    """Test function."""
    table = TableMetadata.model_validate({
        "schema": "public",
        "table": "users",
        "currentUser": "app",
        "columns": [{"name": "id", "ordinalPosition": 1, "dataType": "integer",
                     "nullable": False}],
        "provenance": {"version": "3", "description": "create users",
                       "installedBy": "flyway", "installedOn": "2024-01-02T03:04:05"},
    })
    assert table.current_user == "app"
    assert table.columns[0].data_type == "integer"
    assert table.provenance.installed_on == datetime(2024, 1, 2, 3, 4, 5)


def test_models_are_frozen(table_factory):
    """Test function."""
    table = table_factory()
    with pytest.raises(ValidationError):
        table.owner = "someone"


def test_foreign_keys_in_declaration_order(table_factory, constraint_factory):
    """Test function."""
    table = table_factory(constraints=[
        constraint_factory(name="fk_b", type="FOREIGN KEY", columns=["b"]),
        constraint_factory(name="pk"),
        constraint_factory(name="fk_a", type="FOREIGN KEY", columns=["a"]),
    ])
    assert [fk.name for fk in table.foreign_keys] == ["fk_b", "fk_a"]
    assert table.qualified_name == "public.test_table"


def test_provenance_requires_timestamp():
    """Test function."""
    with pytest.raises(ValidationError):
        MigrationProvenance(version="1", description="x", installed_by="flyway")
