"""Migration history comparison and health."""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from schemadx.models.drift import (
    EnvironmentSnapshot,
    InstallerSummary,
    MigrationComparison,
    MigrationGap,
    MigrationHealth,
    MigrationHealthStatus,
    MigrationWarning,
)
from schemadx.models.metadata import MigrationRecord

logger = logging.getLogger(__name__)

INSTALLER_SUMMARY_LIMIT = 10
NOT_CONFIGURED_MESSAGE = "Migration history table not found. Migrations may not be configured."

def _history(snapshot: EnvironmentSnapshot) -> Optional[List[MigrationRecord]]:
    if not snapshot.capabilities.flyway_history.available:
        return None
    return snapshot.migration_history

def latest_applied(history: List[MigrationRecord]) -> Optional[MigrationRecord]:
    """Successful migration with the highest installed rank."""
    applied = [m for m in history if m.success]
    if not applied:
        return None
    return max(applied, key=lambda m: m.installed_rank)

def compare_migration_history(source: EnvironmentSnapshot,
                              target: EnvironmentSnapshot) -> MigrationComparison:
    """Compare the latest applied migration of both environments."""
    source_history = _history(source)
    target_history = _history(target)
    if source_history is None or target_history is None:
        return MigrationComparison(
            available=False,
            message="Migration history not accessible in one or both environments"
        )

    source_latest = latest_applied(source_history)
    target_latest = latest_applied(target_history)
    source_version = source_latest.version if source_latest else None
    target_version = target_latest.version if target_latest else None
    version_match = source_version == target_version

    if version_match:
        message = "Migration versions match"
    else:
        message = f"Migration version mismatch: {source_version} vs {target_version}"
    logger.debug("Migration comparison %s -> %s: %s",
                 source.environment_name, target.environment_name, message)

    return MigrationComparison(
        available=True,
        source_latest_version=source_version,
        target_latest_version=target_version,
        source_latest_rank=source_latest.installed_rank if source_latest else None,
        target_latest_rank=target_latest.installed_rank if target_latest else None,
        version_match=version_match,
        source_failed_count=sum(1 for m in source_history if not m.success),
        target_failed_count=sum(1 for m in target_history if not m.success),
        source_installed_by=source_latest.installed_by if source_latest else None,
        target_installed_by=target_latest.installed_by if target_latest else None,
        message=message
    )

def analyze_missing_migrations(source: EnvironmentSnapshot,
                               comparison: MigrationComparison) -> MigrationGap:
    """Identify successful source migrations ranked above the target's latest.

    The gap is only detectable when the target is strictly behind the source.
    """
    if not comparison.available:
        return MigrationGap(detectable=False, message="Migration history not accessible")

    source_rank = comparison.source_latest_rank
    target_rank = comparison.target_latest_rank

    if comparison.version_match:
        return MigrationGap(
            detectable=True,
            message="Migration versions match - no missing migrations",
            source_latest_rank=source_rank,
            target_latest_rank=target_rank
        )

    if source_rank is not None and target_rank is None:
        target_rank = 0

    if source_rank is not None and source_rank > target_rank:
        missing = sorted(
            (m for m in source.migration_history or []
             if m.success and m.installed_rank > target_rank),
            key=lambda m: m.installed_rank
        )
        return MigrationGap(
            detectable=True,
            message=f"Target is missing {len(missing)} migration(s)",
            missing_migrations=missing,
            source_latest_rank=source_rank,
            target_latest_rank=comparison.target_latest_rank
        )

    return MigrationGap(
        detectable=False,
        message="Cannot determine missing migrations - version ordering unclear",
        source_latest_rank=source_rank,
        target_latest_rank=comparison.target_latest_rank
    )

def summarize_installers(history: List[MigrationRecord]) -> List[InstallerSummary]:
    """Successful migrations per installer, most recently seen first."""
    counts: Dict[str, int] = {}
    last_seen: Dict[str, Optional[datetime]] = {}
    for record in history:
        if not record.success:
            continue
        user = record.installed_by
        counts[user] = counts.get(user, 0) + 1
        seen = last_seen.setdefault(user, None)
        if record.installed_on is not None and (seen is None or record.installed_on > seen):
            last_seen[user] = record.installed_on

    summaries = [
        InstallerSummary(installed_by=user, applied_count=count, last_seen=last_seen[user])
        for user, count in counts.items()
    ]
    dated = sorted((s for s in summaries if s.last_seen is not None),
                   key=lambda s: s.last_seen, reverse=True)
    undated = [s for s in summaries if s.last_seen is None]
    return (dated + undated)[:INSTALLER_SUMMARY_LIMIT]

def _health_warnings(installers: List[InstallerSummary], latest: Optional[MigrationRecord],
                     current_user: Optional[str]) -> List[MigrationWarning]:
    warnings = []
    names = [s.installed_by for s in installers]
    if len(names) > 1:
        warnings.append(MigrationWarning(
            code="MULTIPLE_INSTALLERS",
            message=f"Migrations were applied by {len(names)} different users: {', '.join(names)}"
        ))

    if (latest is not None and latest.installed_by and current_user
            and current_user != latest.installed_by):
        warnings.append(MigrationWarning(
            code="CREDENTIAL_DRIFT",
            message=(f"Latest migration was installed by {latest.installed_by}, "
                     f"but you are connected as {current_user}")
        ))
    return warnings

def evaluate_migration_health(history: Optional[List[MigrationRecord]],
                              current_user: Optional[str] = None,
                              environment_name: Optional[str] = None) -> MigrationHealth:
    """Grade one environment's migration history.

    First matching rule wins:
    1. No readable history -> NOT_CONFIGURED
    2. Any failed migration -> FAILED
    3. No successful migration -> DEGRADED
    4. Otherwise -> HEALTHY

    Warnings are only computed when a history exists: MULTIPLE_INSTALLERS when
    more than one user applied migrations, CREDENTIAL_DRIFT when the latest
    migration was applied by someone other than ``current_user``.
    """
    if history is None:
        return MigrationHealth(
            environment_name=environment_name,
            status=MigrationHealthStatus.NOT_CONFIGURED,
            message=NOT_CONFIGURED_MESSAGE,
            history_available=False,
            expected_user=current_user
        )

    latest = latest_applied(history)
    failed_count = sum(1 for m in history if not m.success)
    installers = summarize_installers(history)

    if failed_count > 0:
        status = MigrationHealthStatus.FAILED
        message = f"Found {failed_count} failed migration(s). Requires attention."
    elif latest is None:
        status = MigrationHealthStatus.DEGRADED
        message = "No successful migrations found."
    else:
        status = MigrationHealthStatus.HEALTHY
        message = f"Latest migration: {latest.version} - {latest.description}"

    warnings = _health_warnings(installers, latest, current_user)
    logger.debug("Migration health of %s: %s (%d warning(s))",
                 environment_name, status.value, len(warnings))

    return MigrationHealth(
        environment_name=environment_name,
        status=status,
        message=message,
        history_available=True,
        latest_applied=latest,
        failed_count=failed_count,
        installed_by_summary=installers,
        expected_user=current_user,
        warnings=warnings
    )

def assess_environment_migrations(snapshot: EnvironmentSnapshot) -> MigrationHealth:
    """Migration health of a snapshot, as read by its captured user."""
    return evaluate_migration_health(
        _history(snapshot),
        current_user=snapshot.current_user,
        environment_name=snapshot.environment_name
    )
