"""Metadata provider over a captured environment snapshot."""
import logging
from typing import List, Optional

from schemadx.input.loader import load_snapshot
from schemadx.models.drift import EnvironmentCapabilityMatrix, EnvironmentSnapshot
from schemadx.models.metadata import (
    MigrationProvenance,
    MigrationRecord,
    PrivilegeSet,
    TableMetadata,
)
from schemadx.providers.base import MetadataProvider

logger = logging.getLogger(__name__)


class SnapshotProvider(MetadataProvider):
    """Serves metadata from an in-memory EnvironmentSnapshot."""

    def __init__(self, snapshot: EnvironmentSnapshot):
        self.snapshot = snapshot
        self.environment_name = snapshot.environment_name
        self._tables = {(t.schema_name, t.table_name): t for t in snapshot.tables}

    @classmethod
    def from_file(cls, path: str, dialect: str = 'postgres') -> "SnapshotProvider":
        """Provider over a snapshot file (JSON, YAML or DDL)."""
        return cls(load_snapshot(path, dialect=dialect))

    def list_tables(self, schema: str) -> List[str]:
        return [table for (table_schema, table) in self._tables if table_schema == schema]

    def fetch_table_metadata(self, schema: str, table: str) -> Optional[TableMetadata]:
        meta = self._tables.get((schema, table))
        if meta is None:
            logger.debug("Table %s.%s not in snapshot %s", schema, table, self.environment_name)
        return meta

    def fetch_privileges(self, schema: str, table: str) -> Optional[PrivilegeSet]:
        meta = self._tables.get((schema, table))
        return meta.privileges if meta else None

    def fetch_migration_provenance(self, schema: str,
                                   table: str) -> Optional[MigrationProvenance]:
        meta = self._tables.get((schema, table))
        return meta.provenance if meta else None

    def fetch_capabilities(self) -> EnvironmentCapabilityMatrix:
        return self.snapshot.capabilities

    def fetch_migration_history(self) -> Optional[List[MigrationRecord]]:
        return self.snapshot.migration_history

    def fetch_current_user(self) -> Optional[str]:
        return self.snapshot.current_user

    def close(self) -> None:
        self._tables = {}
