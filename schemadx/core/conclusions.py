"""Comparison mode, evidence-based conclusions and privilege requirements."""
from typing import List

from schemadx.models.drift import (
    ComparisonMode,
    DiagnosticConclusion,
    DriftSection,
    EnvironmentCapabilityMatrix,
    MigrationComparison,
    MigrationGap,
    PrivilegeRequirement,
    RiskLevel,
)
from schemadx.models.finding import Severity

EXAMPLE_ERROR_LIMIT = 3

def determine_comparison_mode(source: EnvironmentCapabilityMatrix,
                              target: EnvironmentCapabilityMatrix) -> ComparisonMode:
    """BLOCKED without connection or table listing, FULL with every structural capability."""
    if not source.connect.available or not target.connect.available:
        return ComparisonMode.BLOCKED

    if not (source.tables.available and target.tables.available):
        return ComparisonMode.BLOCKED

    full = all(
        getattr(matrix, name).available
        for matrix in (source, target)
        for name in ('columns', 'constraints', 'indexes')
    )
    return ComparisonMode.FULL if full else ComparisonMode.PARTIAL

def generate_mode_banner(mode: ComparisonMode, target_environment: str) -> str:
    if mode == ComparisonMode.FULL:
        return "Full Comparison: Full schema comparison available for both environments."
    if mode == ComparisonMode.PARTIAL:
        return (
            f"Partial Comparison: {target_environment} metadata access is limited. "
            "Some drift results may be unknown."
        )
    return (
        f"Blocked Comparison: {target_environment} connection lacks required "
        "metadata access."
    )

def _drift_conclusion(sections: List[DriftSection], mode: ComparisonMode):
    items = [item for section in sections for item in section.drift_items]
    errors = [i for i in items if i.severity == Severity.ERROR]
    warnings = [i for i in items if i.severity == Severity.WARN]

    if errors:
        compatibility = sum(1 for i in errors if i.category == "Compatibility")
        evidence = [
            f"Total critical differences: {len(errors)}",
            f"Compatibility issues: {compatibility}",
        ]
        evidence += [f"{i.object_name}: {i.message}" for i in errors[:EXAMPLE_ERROR_LIMIT]]
        return DiagnosticConclusion(
            severity=Severity.ERROR,
            category="Compatibility",
            finding="Critical schema drift detected - application failures likely",
            evidence=evidence,
            impact="INSERT/UPDATE/SELECT operations will fail; application may crash or "
                   "return errors",
            recommendation="Review and apply missing migrations to align target schema"
        )

    if warnings:
        performance = sum(1 for i in items if i.category == "Performance"
                          and i.severity != Severity.INFO)
        return DiagnosticConclusion(
            severity=Severity.WARN,
            category="Performance",
            finding="Schema differences detected - performance inconsistencies likely",
            evidence=[
                f"Total warnings: {len(warnings)}",
                f"Performance-related: {performance}",
            ],
            impact="Query performance may differ; some operations may be slower",
            recommendation="Review index differences to ensure consistent performance"
        )

    if mode == ComparisonMode.FULL:
        return DiagnosticConclusion(
            severity=Severity.INFO,
            category="Alignment",
            finding="No schema drift detected - environments are aligned",
            evidence=["All tables match", "All columns match", "All indexes match"],
            impact="No compatibility or performance risks detected",
            recommendation="Continue monitoring for future changes"
        )
    return None

def _migration_conclusion(comparison: MigrationComparison, gap: MigrationGap):
    if not comparison.available or comparison.version_match:
        return None

    evidence = [
        f"Source latest version: {comparison.source_latest_version}",
        f"Target latest version: {comparison.target_latest_version}",
        f"Source failed migrations: {comparison.source_failed_count or 0}",
        f"Target failed migrations: {comparison.target_failed_count or 0}",
    ]
    if gap.detectable and gap.missing_migrations:
        evidence.append(f"Missing migrations: {len(gap.missing_migrations)}")

    return DiagnosticConclusion(
        severity=Severity.ERROR,
        category="Migration",
        finding="Migration mismatch detected - target missing migrations",
        evidence=evidence,
        impact="Target likely missing migration(s) that introduced schema objects used "
               "by the app",
        recommendation=(
            f"Apply all migrations up to version {comparison.source_latest_version} "
            "to target environment"
        )
    )

def _index_conclusion(sections: List[DriftSection]):
    section = next((s for s in sections if s.section_name == "Indexes"), None)
    if section is None or section.differ_count == 0:
        return None

    evidence = [f"Index differences: {section.differ_count}"]
    high_risk = sum(1 for i in section.drift_items if i.risk_level == RiskLevel.HIGH)
    if high_risk:
        evidence.append(f"High-risk indexes: {high_risk}")

    return DiagnosticConclusion(
        severity=Severity.WARN,
        category="Performance",
        finding="Index drift detected - query performance at risk",
        evidence=evidence,
        impact="Slow queries, timeouts, and CPU spikes likely under load",
        recommendation="Review and align indexes to ensure consistent query performance"
    )

def _partial_conclusion(sections: List[DriftSection], mode: ComparisonMode):
    if mode != ComparisonMode.PARTIAL:
        return None

    evidence = [
        f"{s.section_name}: {s.availability.unavailability_reason}"
        for s in sections if not s.availability.available
    ]
    return DiagnosticConclusion(
        severity=Severity.WARN,
        category="Access",
        finding="Comparison is partial due to limited metadata access",
        evidence=evidence,
        impact="Some drift may be undetectable with current privileges",
        recommendation="Request read-only access to information_schema and pg_catalog for "
                       "full comparison"
    )

def generate_conclusions(sections: List[DriftSection],
                         migration_comparison: MigrationComparison,
                         migration_gap: MigrationGap,
                         mode: ComparisonMode) -> List[DiagnosticConclusion]:
    """Evidence-backed conclusions in fixed order.

    Order: overall drift, migrations, indexes, partial access.
    """
    candidates = [
        _drift_conclusion(sections, mode),
        _migration_conclusion(migration_comparison, migration_gap),
        _index_conclusion(sections),
        _partial_conclusion(sections, mode),
    ]
    return [c for c in candidates if c is not None]

# capability attribute -> (label, catalog object)
_CATALOG_REQUIREMENTS = [
    ('columns', "Columns", "information_schema.columns"),
    ('constraints', "Constraints", "information_schema.table_constraints"),
    ('indexes', "Indexes", "pg_catalog.pg_indexes"),
    ('flyway_history', "Migration History", "public.flyway_schema_history"),
]

def analyze_missing_privileges(capabilities: EnvironmentCapabilityMatrix,
                               grantee: str = "<user>") -> List[PrivilegeRequirement]:
    """Grants that would make the unavailable catalog reads possible."""
    requirements = []
    for attribute, label, catalog in _CATALOG_REQUIREMENTS:
        status = getattr(capabilities, attribute)
        if status.available:
            continue
        requirements.append(PrivilegeRequirement(
            capability=label,
            missing_privilege=status.missing_privilege or f"SELECT on {catalog}",
            reason=status.message,
            required_grants=[f"GRANT SELECT ON {catalog} TO {grantee}"]
        ))
    return requirements
