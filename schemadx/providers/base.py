"""Abstract base class for metadata providers."""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from schemadx.models.drift import EnvironmentCapabilityMatrix, EnvironmentSnapshot
from schemadx.models.metadata import (
    MigrationProvenance,
    MigrationRecord,
    PrivilegeSet,
    TableMetadata,
)

logger = logging.getLogger(__name__)


class MetadataProvider(ABC):
    """Source of table metadata for one environment.

    Implementations fetch everything the engine consumes: table structure,
    privileges, migration provenance and history, and which of those the
    current credentials can read. None of the fetch methods raise for
    unavailable metadata; they return None (or an unavailable capability)
    instead.
    """

    environment_name: str = "default"

    @abstractmethod
    def list_tables(self, schema: str) -> List[str]:
        """Names of the tables visible in a schema.

        Returns:
            Table names, or an empty list if the catalog cannot be read.
        """

    @abstractmethod
    def fetch_table_metadata(self, schema: str, table: str) -> Optional[TableMetadata]:
        """Columns, constraints and indexes of one table.

        Returns:
            TableMetadata, or None if the table is not visible.
        """

    @abstractmethod
    def fetch_privileges(self, schema: str, table: str) -> Optional[PrivilegeSet]:
        """Privilege check for the connected user on one table.

        Returns:
            PrivilegeSet, or None if privileges could not be checked.
        """

    @abstractmethod
    def fetch_migration_provenance(self, schema: str,
                                   table: str) -> Optional[MigrationProvenance]:
        """Migration that created the table, when a migration history is readable."""

    @abstractmethod
    def fetch_capabilities(self) -> EnvironmentCapabilityMatrix:
        """Which metadata categories the current credentials can read."""

    @abstractmethod
    def fetch_migration_history(self) -> Optional[List[MigrationRecord]]:
        """Applied migrations, or None if the history table cannot be read."""

    @abstractmethod
    def fetch_current_user(self) -> Optional[str]:
        """Database user the metadata was read as, or None if unknown."""

    @abstractmethod
    def close(self) -> None:
        """Release provider resources.

        Should be idempotent (safe to call multiple times).
        """

    def assemble_table(self, schema: str, table: str) -> Optional[TableMetadata]:
        """Table metadata merged with its privileges and provenance."""
        meta = self.fetch_table_metadata(schema, table)
        if meta is None:
            return None
        return meta.model_copy(update={
            'privileges': self.fetch_privileges(schema, table),
            'provenance': self.fetch_migration_provenance(schema, table),
        })

    def fetch_snapshot(self, schema: str) -> EnvironmentSnapshot:
        """Capture everything needed to compare this environment with another."""
        capabilities = self.fetch_capabilities()
        tables = []
        if capabilities.tables.available:
            for name in self.list_tables(schema):
                meta = self.assemble_table(schema, name)
                if meta is not None:
                    tables.append(meta)
        else:
            logger.warning("Tables are not readable in %s: %s",
                           self.environment_name, capabilities.tables.message)

        return EnvironmentSnapshot(
            environment_name=self.environment_name,
            schema_name=schema,
            tables=tables,
            capabilities=capabilities,
            current_user=self.fetch_current_user(),
            migration_history=self.fetch_migration_history()
        )
