"""Detection rules for failure-prone table shapes."""
from typing import List, Optional

from schemadx.core.cascade import DEFAULT_INSPECTOR, CascadeInspector
from schemadx.models.finding import FailurePattern, PatternFinding, Severity
from schemadx.models.metadata import ConstraintType, TableMetadata

COMPOSITE_UNIQUE_MIN_COLUMNS = 3

def rule_recursive_cascade(meta: TableMetadata,
                           inspector: CascadeInspector) -> List[PatternFinding]:
    """A self-referencing FK plus any cascading FK can delete a whole hierarchy."""
    fks = meta.foreign_keys
    self_refs = [
        fk for fk in fks
        if inspector.is_self_reference(fk, meta.schema_name, meta.table_name)
    ]
    cascading = [fk for fk in fks if inspector.is_cascading(fk)]
    if not self_refs or not cascading:
        return []

    names = ', '.join(fk.display_name for fk in self_refs)
    return [PatternFinding(
        pattern=FailurePattern.RECURSIVE_CASCADE,
        severity=Severity.ERROR,
        title="Recursive FK with CASCADE",
        description=(
            f"Table '{meta.table_name}' references itself through {names} and has "
            f"{len(cascading)} cascading foreign key(s). A single delete can recurse "
            "through the entire hierarchy and hold locks for a long transaction."
        ),
        recommendation=(
            "Replace ON DELETE CASCADE on the self-reference with RESTRICT or SET NULL "
            "and delete subtrees explicitly."
        ),
        evidence=[f"{fk.display_name}: {fk.definition}" for fk in cascading]
    )]

def rule_composite_unique(meta: TableMetadata,
                          inspector: CascadeInspector) -> List[PatternFinding]:
    """Wide unique keys reject rows that repeat any one combination."""
    # pylint: disable=unused-argument
    for constraint in meta.constraints_of(ConstraintType.UNIQUE):
        if len(constraint.columns) >= COMPOSITE_UNIQUE_MIN_COLUMNS:
            columns = ', '.join(constraint.columns)
            return [PatternFinding(
                pattern=FailurePattern.COMPOSITE_UNIQUE,
                severity=Severity.WARN,
                title="Composite unique constraint",
                description=(
                    f"Unique constraint '{constraint.display_name}' spans "
                    f"{len(constraint.columns)} columns ({columns}). Inserts or updates "
                    "that repeat this combination fail with a duplicate key violation."
                ),
                recommendation=(
                    "Make sure writers upsert on the full key instead of inserting blindly."
                ),
                evidence=list(constraint.columns)
            )]
    return []

def rule_not_null_without_default(meta: TableMetadata,
                                  inspector: CascadeInspector) -> List[PatternFinding]:
    """NOT NULL constraints reported by the catalog as generic constraints."""
    # pylint: disable=unused-argument
    count = 0
    for constraint in meta.constraints_of(ConstraintType.OTHER):
        text = f"{constraint.raw_type or ''} {constraint.definition or ''}".upper()
        if "NOT NULL" in text:
            count += 1
    if count == 0:
        return []

    mandatory = [
        f"{c.name} ({c.data_type})"
        for c in sorted(meta.columns, key=lambda col: col.ordinal_position)
        if not c.nullable and c.column_default is None
    ]
    return [PatternFinding(
        pattern=FailurePattern.NOT_NULL_WITHOUT_DEFAULT,
        severity=Severity.INFO,
        title="NOT NULL without default",
        description=(
            f"{count} NOT NULL constraint(s) found on '{meta.table_name}'. Inserts that "
            "omit these columns fail unless the application always supplies a value."
        ),
        recommendation="Add column defaults or make sure every insert path sets these columns.",
        evidence=mandatory
    )]

def rule_check_constraints(meta: TableMetadata,
                           inspector: CascadeInspector) -> List[PatternFinding]:
    """CHECK constraints reject values outside their predicate."""
    # pylint: disable=unused-argument
    checks = meta.constraints_of(ConstraintType.CHECK)
    if not checks:
        return []

    return [PatternFinding(
        pattern=FailurePattern.CHECK_CONSTRAINTS,
        severity=Severity.INFO,
        title="Check constraints on values",
        description=(
            f"{len(checks)} check constraint(s) restrict the values accepted by "
            f"'{meta.table_name}'. Writes outside the allowed range are rejected."
        ),
        recommendation="Validate these predicates in the application before writing.",
        evidence=[
            f"{c.display_name}: {c.definition}" if c.definition else c.display_name
            for c in checks
        ]
    )]

ALL_RULES = [
    rule_recursive_cascade,
    rule_composite_unique,
    rule_not_null_without_default,
    rule_check_constraints
]

def detect_failure_patterns(meta: TableMetadata,
                            inspector: Optional[CascadeInspector] = None
                            ) -> List[PatternFinding]:
    """Apply all pattern rules to a table.

    Args:
        meta: Table metadata to scan
        inspector: Cascade inspector (substring heuristics by default)

    Returns:
        Applicable patterns in fixed priority order
    """
    inspector = inspector or DEFAULT_INSPECTOR
    patterns = []
    for rule in ALL_RULES:
        patterns.extend(rule(meta, inspector))
    return patterns
