"""Finding models and classifications produced by the single-table classifiers."""
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

class Severity(str, Enum):
    """Severity levels for findings and drift items."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"

SEVERITY_ORDER = {Severity.ERROR: 0, Severity.WARN: 1, Severity.INFO: 2}

class RiskTier(str, Enum):
    """Foreign key risk tiers, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"

class FailurePattern(str, Enum):
    """Failure-prone table shapes, in reporting priority order."""

    RECURSIVE_CASCADE = "RECURSIVE_CASCADE"
    COMPOSITE_UNIQUE = "COMPOSITE_UNIQUE"
    NOT_NULL_WITHOUT_DEFAULT = "NOT_NULL_WITHOUT_DEFAULT"
    CHECK_CONSTRAINTS = "CHECK_CONSTRAINTS"

class ImpactSeverity(str, Enum):
    """Tags for plain-English impact statements."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

class AccessProfile(str, Enum):
    """Expected access profile of the connected identity."""

    READ_ONLY = "read-only"
    READ_WRITE = "read-write"
    ADMIN = "admin"


class Finding(BaseModel):
    """A classified, severity-tagged statement about a single diagnostic fact."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    category: str
    title: str
    description: str
    recommendation: Optional[str] = None
    evidence: List[str] = []


class PatternFinding(Finding):
    """Finding emitted by the failure-pattern detector."""

    pattern: FailurePattern
    category: str = "failure_pattern"


class ForeignKeyRisk(BaseModel):
    """Risk tier assigned to one foreign key."""

    model_config = ConfigDict(frozen=True)

    constraint_name: str
    columns: List[str]
    tier: RiskTier
    cascading: bool
    self_referencing: bool
    definition: Optional[str] = None


class ImpactStatement(BaseModel):
    """A short consequence of the table's shape, phrased for operators."""

    model_config = ConfigDict(frozen=True)

    severity: ImpactSeverity
    message: str


class PrivilegeCheck(BaseModel):
    """Verdict for one privilege under an expected access profile."""

    model_config = ConfigDict(frozen=True)

    privilege: str
    has_priv: bool
    expected: bool
    is_mismatch: bool


class AccessReport(BaseModel):
    """Per-privilege verdicts plus the narrative interpretation."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["access_report"] = "access_report"
    profile: AccessProfile
    owner: str
    current_user: str
    ownership_ok: bool
    has_select_access: bool
    has_write_access: bool
    checks: List[PrivilegeCheck]
    ownership_mismatch: bool = False
    interpretation: List[str]
    status: ImpactSeverity

    @property
    def mismatch_count(self) -> int:
        """Number of privilege rows flagged as mismatches."""
        return sum(1 for check in self.checks if check.is_mismatch)

    @property
    def has_mismatch(self) -> bool:
        """True when any privilege row or the ownership requirement fails."""
        return self.mismatch_count > 0 or self.ownership_mismatch
