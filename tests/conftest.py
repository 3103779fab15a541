"""Common test fixtures."""
# pylint: disable=redefined-outer-name,too-many-arguments,too-many-positional-arguments
from pathlib import Path
import pytest
from schemadx.models.drift import (
    DriftItem,
    DriftStatus,
    EnvironmentCapabilityMatrix,
    EnvironmentSnapshot,
)
from schemadx.models.finding import Severity
from schemadx.models.metadata import Column, Constraint, Index, PrivilegeSet, TableMetadata

@pytest.fixture
def fixtures_dir():
    """Fixture for the directory containing test data files."""
    return Path(__file__).parent / "fixtures"

@pytest.fixture
def column_factory():
    """Factory to create Column instances for testing."""
    def _make_column(
        name="id",
        ordinal_position=1,
        data_type="integer",
        nullable=False,
        column_default=None,
        comment=None
    ):
        return Column(
            name=name,
            ordinal_position=ordinal_position,
            data_type=data_type,
            nullable=nullable,
            column_default=column_default,
            comment=comment
        )
    return _make_column

@pytest.fixture
def constraint_factory():
    """Factory to create Constraint instances for testing."""
    def _make_constraint(
        name="test_pkey",
        type="PRIMARY KEY",  # pylint: disable=redefined-builtin
        columns=None,
        definition=None
    ):
        if columns is None:
            columns = ["id"]
        return Constraint(name=name, type=type, columns=columns, definition=definition)
    return _make_constraint

@pytest.fixture
def index_factory():
    """Factory to create Index instances for testing."""
    def _make_index(
        name="test_pkey",
        columns=None,
        primary=False,
        unique=False,
        access_method="btree",
        definition=None
    ):
        if columns is None:
            columns = ["id"]
        return Index(
            name=name,
            columns=columns,
            primary=primary,
            unique=unique,
            access_method=access_method,
            definition=definition
        )
    return _make_index

@pytest.fixture
def privilege_factory():
    """Factory to create PrivilegeSet instances for testing."""
    def _make_privileges(granted=None, missing=None, owner="app", current_user="app"):
        if granted is None:
            granted = ["SELECT", "INSERT", "UPDATE", "DELETE"]
        return PrivilegeSet(
            granted_privileges=granted,
            missing_privileges=missing or [],
            owner=owner,
            current_user=current_user
        )
    return _make_privileges

@pytest.fixture
def table_factory(column_factory, constraint_factory):
    """Factory to create TableMetadata instances for testing.

    Defaults to a table with an ``id`` primary key owned by the connected user.
    """
    def _make_table(
        table_name="test_table",
        schema_name="public",
        columns=None,
        constraints=None,
        indexes=None,
        owner="app",
        current_user="app",
        privileges=None,
        provenance=None,
        comment=None
    ):
        if columns is None:
            columns = [column_factory()]
        if constraints is None:
            constraints = [constraint_factory(name=f"{table_name}_pkey")]
        return TableMetadata(
            schema_name=schema_name,
            table_name=table_name,
            owner=owner,
            current_user=current_user,
            comment=comment,
            columns=columns,
            constraints=constraints,
            indexes=indexes or [],
            privileges=privileges,
            provenance=provenance
        )
    return _make_table

@pytest.fixture
def drift_item_factory():
    """Factory to create DriftItem instances for testing."""
    def _make_item(
        object_name="users",
        status=DriftStatus.MATCH,
        severity=Severity.INFO,
        category="Compatibility",
        attribute="exists",
        object_type="table",
        message=None,
        source_value=True,
        target_value=True,
        risk_level=None
    ):
        return DriftItem(
            category=category,
            object_name=object_name,
            attribute=attribute,
            object_type=object_type,
            source_value=source_value,
            target_value=target_value,
            status=status,
            severity=severity,
            risk_level=risk_level,
            message=message or f"Table '{object_name}' exists in both environments"
        )
    return _make_item

@pytest.fixture
def snapshot_factory():
    """Factory to create EnvironmentSnapshot instances for testing."""
    def _make_snapshot(name="prod", tables=None, capabilities=None, migration_history=None,
                       current_user=None):
        return EnvironmentSnapshot(
            environment_name=name,
            current_user=current_user,
            tables=tables or [],
            capabilities=capabilities or EnvironmentCapabilityMatrix(),
            migration_history=migration_history
        )
    return _make_snapshot
