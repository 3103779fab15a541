"""Models produced by pre-execution statement analysis."""
from typing import List

from pydantic import BaseModel, ConfigDict


class IndexCoverage(BaseModel):
    """How the indexes of a table serve the WHERE columns of a statement.

    ``matched_indexes`` entries read ``<index> (exact match)``,
    ``<index> (covers all columns)`` or ``<index> (prefix match)``.
    """

    model_config = ConfigDict(frozen=True)

    table_name: str
    query_columns: List[str] = []
    has_composite_index: bool = False
    has_partial_coverage: bool = False
    matched_indexes: List[str] = []
    suggested_indexes: List[str] = []


class ConstraintRisks(BaseModel):
    """Constraints an INSERT or UPDATE may trip over."""

    model_config = ConfigDict(frozen=True)

    table_name: str
    missing_not_null_columns: List[str] = []
    unique_constraint_columns: List[str] = []
    foreign_key_columns: List[str] = []
    check_constraints: List[str] = []

    @property
    def has_risks(self) -> bool:
        """True when any constraint could reject the statement."""
        return bool(self.missing_not_null_columns or self.unique_constraint_columns
                    or self.foreign_key_columns or self.check_constraints)


class CascadeImpact(BaseModel):
    """Tables a DELETE on ``table_name`` reaches through foreign keys.

    ``affected_tables`` entries read ``schema.table (RULE)``.
    """

    model_config = ConfigDict(frozen=True)

    table_name: str
    cascading_foreign_keys: int = 0
    affected_tables: List[str] = []
    has_recursive_cascade: bool = False
    cascade_depth: str = "NONE"
