"""Diagnosis orchestration for single tables and environment pairs."""
import logging
from typing import List, Optional, Union

from schemadx.config.settings import DEFAULT_MAX_MATCH_ITEMS, RiskVocabulary
from schemadx.core.access import interpret_access
from schemadx.core.aggregate import DriftFilter, compute_kpis, filter_sections, sort_findings
from schemadx.core.blast_radius import generate_blast_radius
from schemadx.core.cascade import CascadeInspector
from schemadx.core.conclusions import (
    analyze_missing_privileges,
    determine_comparison_mode,
    generate_conclusions,
    generate_mode_banner,
)
from schemadx.core.drift import (
    common_tables,
    compare_columns_section,
    compare_constraints_section,
    compare_grants_section,
    compare_indexes_section,
    compare_tables_section,
)
from schemadx.core.fk_risk import assess_foreign_keys
from schemadx.core.impact import summarize_impact
from schemadx.core.migrations import (
    analyze_missing_migrations,
    assess_environment_migrations,
    compare_migration_history,
)
from schemadx.core.patterns import detect_failure_patterns
from schemadx.models.drift import EnvironmentSnapshot
from schemadx.models.finding import (
    AccessProfile,
    AccessReport,
    Finding,
    ForeignKeyRisk,
    RiskTier,
    Severity,
)
from schemadx.models.metadata import TableMetadata
from schemadx.models.results import EnvironmentComparison, TableDiagnosis

logger = logging.getLogger(__name__)

_TIER_SEVERITY = {
    RiskTier.CRITICAL: Severity.ERROR,
    RiskTier.HIGH: Severity.WARN,
    RiskTier.MODERATE: Severity.WARN,
}

def _cascade_findings(meta: TableMetadata, fk_risks: List[ForeignKeyRisk]) -> List[Finding]:
    findings = []
    for risk in fk_risks:
        if not risk.cascading:
            continue
        findings.append(Finding(
            severity=_TIER_SEVERITY[risk.tier],
            category="foreign_key",
            title=f"{risk.tier.value.capitalize()} cascade risk on {risk.constraint_name}",
            description=(
                f"Foreign key '{risk.constraint_name}' on '{meta.table_name}' "
                f"({', '.join(risk.columns)}) propagates deletes or updates from its "
                f"parent table."
            ),
            recommendation="Confirm cascading deletes are intended for this relationship.",
            evidence=[risk.definition] if risk.definition else []
        ))
    return findings

def _access_findings(meta: TableMetadata, access: Optional[AccessReport]) -> List[Finding]:
    if access is None:
        return []

    findings = []
    for check in access.checks:
        if not check.is_mismatch:
            continue
        findings.append(Finding(
            severity=Severity.ERROR,
            category="access",
            title=f"Missing {check.privilege} privilege",
            description=(
                f"The {access.profile.value} profile expects {check.privilege} on "
                f"{meta.qualified_name}, but it is not granted to {access.current_user}."
            ),
            recommendation=(
                f"GRANT {check.privilege} ON {meta.qualified_name} TO {access.current_user};"
            )
        ))

    if access.ownership_mismatch:
        findings.append(Finding(
            severity=Severity.ERROR,
            category="access",
            title="Ownership mismatch",
            description=(
                f"The admin profile requires {access.current_user} to own "
                f"{meta.qualified_name}, but it is owned by {access.owner}."
            ),
            recommendation="Run DDL as the owning role or transfer ownership.",
            evidence=[f"owner: {access.owner}", f"current user: {access.current_user}"]
        ))
    return findings

def _has_credential_drift(meta: TableMetadata) -> bool:
    provenance = meta.provenance
    return (
        provenance is not None
        and provenance.installed_by != meta.current_user
        and meta.owner != meta.current_user
    )

def _provenance_findings(meta: TableMetadata) -> List[Finding]:
    if not _has_credential_drift(meta):
        return []

    provenance = meta.provenance
    return [Finding(
        severity=Severity.WARN,
        category="provenance",
        title="Potential credential drift",
        description=(
            f"Migration {provenance.version} created this table as "
            f"{provenance.installed_by}, the table is owned by {meta.owner}, and the "
            f"connected user is {meta.current_user}."
        ),
        recommendation="Run migrations and the application with consistent credentials.",
        evidence=[
            f"installed by: {provenance.installed_by}",
            f"installed on: {provenance.installed_on.isoformat()}",
        ]
    )]

def _integrity_findings(meta: TableMetadata) -> List[Finding]:
    undefined = [fk.display_name for fk in meta.foreign_keys if not fk.definition]
    if not undefined:
        return []

    return [Finding(
        severity=Severity.WARN,
        category="foreign_key",
        title="Foreign key integrity",
        description=(
            f"{len(undefined)} foreign key(s) on '{meta.table_name}' have no definition; "
            "cascade behaviour cannot be determined and is treated as non-cascading."
        ),
        recommendation="Capture constraint definitions to classify cascade risk.",
        evidence=undefined
    )]

def diagnose_table(
    meta: TableMetadata,
    expected_profile: Union[AccessProfile, str] = AccessProfile.READ_WRITE,
    vocabulary: Optional[RiskVocabulary] = None,
    inspector: Optional[CascadeInspector] = None
) -> TableDiagnosis:
    """Run every single-table classifier and consolidate the findings.

    Args:
        meta: Table metadata
        expected_profile: Access profile the caller intends to use the table with
        vocabulary: Root-entity vocabulary (defaults apply when omitted)
        inspector: Cascade inspector (substring heuristics by default)

    Returns:
        TableDiagnosis with findings ordered ERROR, WARN, INFO
    """
    profile = AccessProfile(expected_profile)
    logger.debug("Diagnosing %s with profile %s", meta.qualified_name, profile.value)

    # 1. Classify
    fk_risks = assess_foreign_keys(meta, vocabulary=vocabulary, inspector=inspector)
    patterns = detect_failure_patterns(meta, inspector=inspector)
    access = interpret_access(meta, profile)
    impact = summarize_impact(meta, fk_risks, patterns, vocabulary=vocabulary)

    # 2. Consolidate
    findings: List[Finding] = []
    findings.extend(_cascade_findings(meta, fk_risks))
    findings.extend(patterns)
    findings.extend(_access_findings(meta, access))
    findings.extend(_provenance_findings(meta))
    findings.extend(_integrity_findings(meta))

    cascading_count = sum(1 for risk in fk_risks if risk.cascading)
    logger.debug("Diagnosis of %s: %d findings, %d cascading FKs",
                 meta.qualified_name, len(findings), cascading_count)

    return TableDiagnosis(
        schema_name=meta.schema_name,
        table_name=meta.table_name,
        expected_profile=profile,
        ownership_ok=meta.owner == meta.current_user,
        has_cascade_risk=cascading_count > 0,
        cascading_fk_count=cascading_count,
        fk_integrity_ok=all(fk.definition for fk in meta.foreign_keys),
        has_credential_drift=_has_credential_drift(meta),
        foreign_key_risks=fk_risks,
        patterns=patterns,
        access=access,
        impact=impact,
        findings=sort_findings(findings)
    )

def compare_environments(
    source: EnvironmentSnapshot,
    target: EnvironmentSnapshot,
    max_match_items: int = DEFAULT_MAX_MATCH_ITEMS,
    drift_filter: Optional[DriftFilter] = None
) -> EnvironmentComparison:
    """Compare a source environment against a target environment.

    Args:
        source: Reference environment (usually the one known to work)
        target: Environment suspected of drift
        max_match_items: Cap on materialized MATCH items per section
        drift_filter: Optional display filter; only affects ``visible_items``

    Returns:
        EnvironmentComparison with sections, migrations, blast radius,
        conclusions and KPIs over the unfiltered result
    """
    logger.info("Comparing environments: %s -> %s",
                source.environment_name, target.environment_name)

    # 1. Comparison mode
    mode = determine_comparison_mode(source.capabilities, target.capabilities)

    # 2. Drift sections
    tables_section = compare_tables_section(source, target, max_match_items)
    sections = [tables_section]

    availability = tables_section.availability
    if availability.available and not availability.partial:
        tables = common_tables(source, target)
        if tables:
            sections.append(compare_columns_section(source, target, tables, max_match_items))
            sections.append(compare_constraints_section(source, target, tables, max_match_items))
            sections.append(compare_indexes_section(source, target, tables, max_match_items))
            sections.append(compare_grants_section(source, target, tables, max_match_items))

    # 3. Migrations
    migration_comparison = compare_migration_history(source, target)
    migration_gap = analyze_missing_migrations(source, migration_comparison)
    source_health = assess_environment_migrations(source)
    target_health = assess_environment_migrations(target)

    # 4. Derived views
    blast_radius = generate_blast_radius(sections)
    missing_privileges = analyze_missing_privileges(target.capabilities)
    conclusions = generate_conclusions(sections, migration_comparison, migration_gap, mode)
    kpis = compute_kpis(sections, migration_gap)

    visible_items = None
    if drift_filter is not None:
        visible_items = filter_sections(sections, drift_filter)

    logger.info("Comparison %s: %d differences, %d unknown",
                mode.value, kpis.total_differences, kpis.total_unknown)

    return EnvironmentComparison(
        source_environment=source.environment_name,
        target_environment=target.environment_name,
        schema_name=source.schema_name,
        mode=mode,
        mode_banner=generate_mode_banner(mode, target.environment_name),
        kpis=kpis,
        source_capabilities=source.capabilities,
        target_capabilities=target.capabilities,
        drift_sections=sections,
        migration_comparison=migration_comparison,
        migration_gap=migration_gap,
        blast_radius=blast_radius,
        conclusions=conclusions,
        missing_privileges=missing_privileges,
        visible_items=visible_items,
        source_migration_health=source_health,
        target_migration_health=target_health
    )
