"""Top-level result variants returned to callers.

Each variant carries a ``kind`` tag so renderers dispatch on it rather than on
which attributes happen to be present.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from schemadx.models.drift import (
    BlastRadiusItem,
    ComparisonKPIs,
    ComparisonMode,
    DiagnosticConclusion,
    DriftItem,
    DriftSection,
    EnvironmentCapabilityMatrix,
    MigrationComparison,
    MigrationGap,
    MigrationHealth,
    PrivilegeRequirement,
)
from schemadx.models.finding import (
    AccessProfile,
    AccessReport,
    Finding,
    ForeignKeyRisk,
    ImpactStatement,
    PatternFinding,
)
from schemadx.models.statement import CascadeImpact, ConstraintRisks, IndexCoverage
from schemadx.sql.statement_parser import SqlOperation


class TableDiagnosis(BaseModel):
    """Everything the single-table classifiers concluded about one table."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["table_diagnosis"] = "table_diagnosis"
    schema_name: str
    table_name: str
    expected_profile: AccessProfile
    ownership_ok: bool
    has_cascade_risk: bool
    cascading_fk_count: int
    fk_integrity_ok: bool
    has_credential_drift: bool
    foreign_key_risks: List[ForeignKeyRisk] = []
    patterns: List[PatternFinding] = []
    access: Optional[AccessReport] = None
    impact: List[ImpactStatement] = []
    findings: List[Finding] = []


class EnvironmentComparison(BaseModel):
    """Drift between a source and a target environment."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["environment_comparison"] = "environment_comparison"
    source_environment: str
    target_environment: str
    schema_name: str
    mode: ComparisonMode
    mode_banner: str
    kpis: ComparisonKPIs
    source_capabilities: EnvironmentCapabilityMatrix
    target_capabilities: EnvironmentCapabilityMatrix
    drift_sections: List[DriftSection] = []
    migration_comparison: MigrationComparison
    migration_gap: MigrationGap
    blast_radius: List[BlastRadiusItem] = []
    conclusions: List[DiagnosticConclusion] = []
    missing_privileges: List[PrivilegeRequirement] = []
    visible_items: Optional[List[DriftItem]] = None
    source_migration_health: Optional[MigrationHealth] = None
    target_migration_health: Optional[MigrationHealth] = None


class StatementAnalysis(BaseModel):
    """What a single DML statement is predicted to do before it runs."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["statement_analysis"] = "statement_analysis"
    operation: SqlOperation
    analyzed_sql: str
    table_name: Optional[str] = None
    outcome_summary: Optional[str] = None
    findings: List[Finding] = []
    index_analysis: Optional[IndexCoverage] = None
    constraint_risks: Optional[ConstraintRisks] = None
    cascade_analysis: Optional[CascadeImpact] = None
    is_valid: bool = True
    parse_error: Optional[str] = None


DiagnosticResult = Annotated[
    Union[TableDiagnosis, AccessReport, EnvironmentComparison, StatementAnalysis, MigrationHealth],
    Field(discriminator="kind")
]

DIAGNOSTIC_RESULT_ADAPTER = TypeAdapter(DiagnosticResult)
