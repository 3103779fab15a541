"""Plain-English consequences derived from the single-table classifiers."""
from typing import List, Optional

from schemadx.config.settings import RiskVocabulary
from schemadx.core.fk_risk import DEFAULT_VOCABULARY
from schemadx.models.finding import (
    FailurePattern,
    ForeignKeyRisk,
    ImpactSeverity,
    ImpactStatement,
    PatternFinding,
)
from schemadx.models.metadata import ConstraintType, TableMetadata

def summarize_impact(
    meta: TableMetadata,
    fk_risks: List[ForeignKeyRisk],
    patterns: List[PatternFinding],
    vocabulary: Optional[RiskVocabulary] = None
) -> List[ImpactStatement]:
    """Derive impact statements. Every applicable rule contributes.

    Args:
        meta: Table metadata
        fk_risks: Output of assess_foreign_keys for the same table
        patterns: Output of detect_failure_patterns for the same table
        vocabulary: Supplies the parent token derivation

    Returns:
        Statements in rule order: cascade, uniqueness, primary key
    """
    vocabulary = vocabulary or DEFAULT_VOCABULARY
    statements = []

    if any(risk.cascading for risk in fk_risks):
        recursive = any(p.pattern == FailurePattern.RECURSIVE_CASCADE for p in patterns)
        if recursive:
            message = (
                "Deleting a parent row can trigger a deep recursive delete and a "
                "long-running transaction that blocks other writers."
            )
        else:
            parent = vocabulary.parent_token(meta.table_name)
            message = (
                f"Cascade delete risk: deleting a {parent} will cascade to "
                f"{meta.table_name} records."
            )
        statements.append(ImpactStatement(severity=ImpactSeverity.WARNING, message=message))

    for constraint in meta.constraints_of(ConstraintType.UNIQUE):
        if len(constraint.columns) > 2:
            columns = ', '.join(constraint.columns[:3])
            statements.append(ImpactStatement(
                severity=ImpactSeverity.SUCCESS,
                message=f"Duplicate rows are prevented: ({columns}) must be unique together."
            ))
            break

    if not meta.constraints_of(ConstraintType.PRIMARY_KEY):
        statements.append(ImpactStatement(
            severity=ImpactSeverity.ERROR,
            message=(
                "No primary key: updates and deletes may affect multiple rows "
                "unintentionally."
            )
        ))

    return statements
