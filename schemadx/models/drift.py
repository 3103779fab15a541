"""Cross-environment drift models."""
from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from schemadx.models.finding import Severity
from schemadx.models.metadata import MigrationRecord, TableMetadata

class DriftStatus(str, Enum):
    """Three-valued comparison outcome."""

    MATCH = "MATCH"
    DIFFER = "DIFFER"
    UNKNOWN = "UNKNOWN"  # capability unavailable on at least one side

class RiskLevel(str, Enum):
    """Risk attached to structural differences."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

RISK_ORDER = {RiskLevel.HIGH: 1, RiskLevel.MEDIUM: 2, RiskLevel.LOW: 3}

class ComparisonMode(str, Enum):
    """How much of a comparison the available capabilities allow."""

    FULL = "FULL"
    PARTIAL = "PARTIAL"
    BLOCKED = "BLOCKED"


class DriftItem(BaseModel):
    """A single compared attribute of one object across two environments."""

    model_config = ConfigDict(frozen=True)

    category: str  # Compatibility, Performance, Access, Cosmetic
    object_name: str  # e.g. "users", "users.email"
    attribute: str  # e.g. "exists", "data_type", "is_nullable"
    object_type: Optional[str] = None  # table, column, constraint, index, privilege
    source_value: Any = None
    target_value: Any = None
    status: DriftStatus
    severity: Severity
    risk_level: Optional[RiskLevel] = None
    message: str


class SectionAvailability(BaseModel):
    """Whether a drift section could be computed."""

    model_config = ConfigDict(frozen=True)

    available: bool
    partial: bool = False
    unavailability_reason: Optional[str] = None
    needed_privilege: Optional[str] = None
    impact: Optional[str] = None

    @classmethod
    def create_available(cls) -> "SectionAvailability":
        """Fully available section."""
        return cls(available=True)

    @classmethod
    def create_partial(cls, reason: str) -> "SectionAvailability":
        """Section computed with some UNKNOWN results."""
        return cls(
            available=True,
            partial=True,
            unavailability_reason=reason,
            impact="Some drift results may be unknown"
        )

    @classmethod
    def create_unavailable(cls, reason: Optional[str], needed_privilege: str,
                           impact: str) -> "SectionAvailability":
        """Section that could not be computed at all."""
        return cls(
            available=False,
            unavailability_reason=reason,
            needed_privilege=needed_privilege,
            impact=impact
        )


class DriftSection(BaseModel):
    """Drift results for one logical section (Tables, Columns, ...).

    The counts describe the full compared population. ``drift_items`` may hold
    fewer MATCH items than ``match_count`` when matches were capped.
    """

    model_config = ConfigDict(frozen=True)

    section_name: str
    description: str = ""
    availability: SectionAvailability
    drift_items: List[DriftItem] = []
    match_count: int = 0
    differ_count: int = 0
    unknown_count: int = 0

    @model_validator(mode="after")
    def _check_counts(self):
        total = self.match_count + self.differ_count + self.unknown_count
        if total < len(self.drift_items):
            raise ValueError(
                f"Section '{self.section_name}' counts ({total}) are smaller than its "
                f"materialized items ({len(self.drift_items)})"
            )
        return self

    @property
    def population(self) -> int:
        """Number of compared attributes, including uncapped matches."""
        return self.match_count + self.differ_count + self.unknown_count


class CapabilityStatus(BaseModel):
    """Whether one category of metadata can be read with the current credentials."""

    model_config = ConfigDict(frozen=True)

    available: bool = True
    message: str = "Available"
    diagnostic_code: Optional[str] = None
    missing_privilege: Optional[str] = None

    @classmethod
    def create_unavailable(cls, message: str, diagnostic_code: Optional[str] = None,
                           missing_privilege: Optional[str] = None) -> "CapabilityStatus":
        """Unavailable capability with the reason it could not be read."""
        return cls(
            available=False,
            message=message,
            diagnostic_code=diagnostic_code,
            missing_privilege=missing_privilege
        )


class EnvironmentCapabilityMatrix(BaseModel):
    """Capabilities of one environment's connection."""

    model_config = ConfigDict(frozen=True)

    connect: CapabilityStatus = CapabilityStatus()
    identity: CapabilityStatus = CapabilityStatus()
    tables: CapabilityStatus = CapabilityStatus()
    columns: CapabilityStatus = CapabilityStatus()
    constraints: CapabilityStatus = CapabilityStatus()
    indexes: CapabilityStatus = CapabilityStatus()
    flyway_history: CapabilityStatus = CapabilityStatus()
    grants: CapabilityStatus = CapabilityStatus()


class EnvironmentSnapshot(BaseModel):
    """Metadata captured from one environment for drift comparison."""

    model_config = ConfigDict(frozen=True)

    environment_name: str
    schema_name: str = "public"
    current_user: Optional[str] = None
    tables: List[TableMetadata] = []
    capabilities: EnvironmentCapabilityMatrix = EnvironmentCapabilityMatrix()
    migration_history: Optional[List[MigrationRecord]] = None

    def table_map(self):
        """Tables keyed by name."""
        return {t.table_name: t for t in self.tables}


class MigrationComparison(BaseModel):
    """Latest applied migration on each side."""

    model_config = ConfigDict(frozen=True)

    available: bool
    source_latest_version: Optional[str] = None
    target_latest_version: Optional[str] = None
    source_latest_rank: Optional[int] = None
    target_latest_rank: Optional[int] = None
    version_match: bool = False
    source_failed_count: Optional[int] = None
    target_failed_count: Optional[int] = None
    source_installed_by: Optional[str] = None
    target_installed_by: Optional[str] = None
    message: str


class MigrationGap(BaseModel):
    """Migrations applied in the source but not in the target."""

    model_config = ConfigDict(frozen=True)

    detectable: bool
    message: str
    missing_migrations: List[MigrationRecord] = []
    source_latest_rank: Optional[int] = None
    target_latest_rank: Optional[int] = None


class MigrationHealthStatus(str, Enum):
    """Health of one environment's migration history."""

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"  # history exists but nothing applied successfully
    FAILED = "FAILED"
    NOT_CONFIGURED = "NOT_CONFIGURED"


class InstallerSummary(BaseModel):
    """Migrations applied by one database user."""

    model_config = ConfigDict(frozen=True)

    installed_by: str
    applied_count: int
    last_seen: Optional[datetime] = None


class MigrationWarning(BaseModel):
    """Coded warning about who applied migrations."""

    model_config = ConfigDict(frozen=True)

    code: str  # MULTIPLE_INSTALLERS, CREDENTIAL_DRIFT
    message: str


class MigrationHealth(BaseModel):
    """Single-environment migration history verdict."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["migration_health"] = "migration_health"
    environment_name: Optional[str] = None
    status: MigrationHealthStatus
    message: str
    history_available: bool
    latest_applied: Optional[MigrationRecord] = None
    failed_count: int = 0
    installed_by_summary: List[InstallerSummary] = []
    expected_user: Optional[str] = None
    warnings: List[MigrationWarning] = []


class BlastRadiusItem(BaseModel):
    """Likely symptoms of one drift item, or of a group of similar items."""

    model_config = ConfigDict(frozen=True)

    object_name: str
    drift_type: str
    drift_subtype: Optional[str] = None
    category: str
    risk_level: RiskLevel
    likely_symptoms: List[str]
    is_group_representative: bool = False
    group_count: int = 1


class DiagnosticConclusion(BaseModel):
    """Evidence-backed conclusion drawn from a comparison."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    category: str
    finding: str
    evidence: List[str] = []
    impact: str
    recommendation: str


class PrivilegeRequirement(BaseModel):
    """A grant needed to make an unavailable section comparable."""

    model_config = ConfigDict(frozen=True)

    capability: str
    missing_privilege: str
    reason: Optional[str] = None
    required_grants: List[str] = []


class ComparisonKPIs(BaseModel):
    """Headline counts over the unfiltered comparison."""

    model_config = ConfigDict(frozen=True)

    compatibility_errors: int
    performance_warnings: int
    missing_migrations: int
    has_critical_issues: bool
    total_matches: int = 0
    total_differences: int = 0
    total_unknown: int = 0
