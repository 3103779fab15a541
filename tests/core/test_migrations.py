"""Tests for migration history comparison and health."""
from datetime import datetime

from schemadx.core.migrations import (
    INSTALLER_SUMMARY_LIMIT,
    analyze_missing_migrations,
    assess_environment_migrations,
    compare_migration_history,
    evaluate_migration_health,
    latest_applied,
    summarize_installers,
)
from schemadx.models.drift import (
    CapabilityStatus,
    EnvironmentCapabilityMatrix,
    MigrationHealthStatus,
)
from schemadx.models.metadata import MigrationRecord


def _history(*ranks, failed=()):
    return [
        MigrationRecord(
            installed_rank=rank,
            version=str(rank),
            description=f"migration {rank}",
            script=f"V{rank}__migration.sql",
            installed_by="flyway",
            installed_on=datetime(2024, 1, rank),
            success=rank not in failed
        )
        for rank in ranks
    ]


def test_latest_applied_skips_failures():
    """Failed rows are never the latest applied migration."""
    assert latest_applied(_history(1, 2, 3, failed=(3,))).version == "2"
    assert latest_applied(_history(1, failed=(1,))) is None
    assert latest_applied([]) is None


def test_versions_match(snapshot_factory):
    """Same latest rank on both sides means nothing is missing."""
    source = snapshot_factory(migration_history=_history(1, 2))
    target = snapshot_factory(name="staging", migration_history=_history(1, 2))
    comparison = compare_migration_history(source, target)
    gap = analyze_missing_migrations(source, comparison)

    assert comparison.available is True
    assert comparison.version_match is True
    assert comparison.message == "Migration versions match"
    assert gap.detectable is True
    assert gap.missing_migrations == []
    assert gap.message == "Migration versions match - no missing migrations"


def test_target_behind(snapshot_factory):
    """Migrations applied only in the source are listed as missing."""
    source = snapshot_factory(migration_history=_history(1, 2, 3, 4))
    target = snapshot_factory(name="staging", migration_history=_history(1, 2, 3, failed=(3,)))
    comparison = compare_migration_history(source, target)
    gap = analyze_missing_migrations(source, comparison)

    assert comparison.message == "Migration version mismatch: 4 vs 2"
    assert comparison.target_failed_count == 1
    assert comparison.source_installed_by == "flyway"
    assert gap.detectable is True
    assert [m.version for m in gap.missing_migrations] == ["3", "4"]
    assert gap.message == "Target is missing 2 migration(s)"


def test_empty_target_history(snapshot_factory):
    """An empty target history misses every source migration."""
    source = snapshot_factory(migration_history=_history(1, 2))
    target = snapshot_factory(name="staging", migration_history=[])
    gap = analyze_missing_migrations(source, compare_migration_history(source, target))
    assert gap.detectable is True
    assert len(gap.missing_migrations) == 2
    assert gap.target_latest_rank is None


def test_target_ahead_is_not_detectable(snapshot_factory):
    """A target ahead of the source leaves the gap undetectable."""
    source = snapshot_factory(migration_history=_history(1))
    target = snapshot_factory(name="staging", migration_history=_history(1, 2))
    gap = analyze_missing_migrations(source, compare_migration_history(source, target))
    assert gap.detectable is False
    assert gap.message == "Cannot determine missing migrations - version ordering unclear"


def test_history_unavailable(snapshot_factory):
    """Unreadable target history makes the gap undetectable."""
    denied = EnvironmentCapabilityMatrix(
        flyway_history=CapabilityStatus.create_unavailable("relation does not exist")
    )
    source = snapshot_factory(migration_history=_history(1))
    target = snapshot_factory(name="staging", capabilities=denied, migration_history=_history(1))
    comparison = compare_migration_history(source, target)
    gap = analyze_missing_migrations(source, comparison)

    assert comparison.available is False
    assert gap.detectable is False
    assert gap.message == "Migration history not accessible"


def test_history_not_captured(snapshot_factory):
    """A snapshot without history cannot be compared."""
    source = snapshot_factory(migration_history=_history(1))
    target = snapshot_factory(name="staging", migration_history=None)
    assert compare_migration_history(source, target).available is False


def _installed(rank, user, day=None, success=True):
    return MigrationRecord(
        installed_rank=rank,
        version=str(rank),
        description=f"migration {rank}",
        installed_by=user,
        installed_on=datetime(2024, 2, day) if day else None,
        success=success
    )


def test_health_not_configured():
    """No history table means migrations are not set up here."""
    health = evaluate_migration_health(None, current_user="app")
    assert health.kind == "migration_health"
    assert health.status == MigrationHealthStatus.NOT_CONFIGURED
    assert health.history_available is False
    assert health.message.startswith("Migration history table not found")
    assert health.warnings == []


def test_health_healthy():
    """Successful migrations only is HEALTHY with the latest version."""
    health = evaluate_migration_health(_history(1, 2), current_user="flyway",
                                       environment_name="prod")
    assert health.status == MigrationHealthStatus.HEALTHY
    assert health.environment_name == "prod"
    assert health.message == "Latest migration: 2 - migration 2"
    assert health.latest_applied.installed_rank == 2
    assert health.failed_count == 0
    assert health.warnings == []


def test_health_failed_wins_over_healthy():
    """A single failure marks the history FAILED even with later successes."""
    health = evaluate_migration_health(_history(1, 2, 3, failed=(2,)))
    assert health.status == MigrationHealthStatus.FAILED
    assert health.failed_count == 1
    assert health.message == "Found 1 failed migration(s). Requires attention."
    assert health.latest_applied.version == "3"


def test_health_degraded_when_nothing_applied():
    """A history without successful rows is DEGRADED."""
    assert evaluate_migration_health([]).status == MigrationHealthStatus.DEGRADED
    assert evaluate_migration_health([]).message == "No successful migrations found."


def test_installer_summary_order_and_counts():
    """Most recently seen installer first; failed rows are not counted."""
    history = [
        _installed(1, "flyway", day=1),
        _installed(2, "flyway", day=2),
        _installed(3, "deploy", day=5),
        _installed(4, "manual"),
        _installed(5, "intern", day=9, success=False),
    ]
    summary = summarize_installers(history)
    assert [(s.installed_by, s.applied_count) for s in summary] == [
        ("deploy", 1), ("flyway", 2), ("manual", 1)
    ]
    assert summary[1].last_seen == datetime(2024, 2, 2)
    assert summary[2].last_seen is None


def test_installer_summary_is_capped():
    """At most ten installers are listed, newest first."""
    history = [_installed(i, f"user{i}", day=i) for i in range(1, 15)]
    summary = summarize_installers(history)
    assert len(summary) == INSTALLER_SUMMARY_LIMIT
    assert summary[0].installed_by == "user14"


def test_health_multiple_installers_warning():
    """More than one installer raises MULTIPLE_INSTALLERS."""
    history = [_installed(1, "flyway", day=1), _installed(2, "deploy", day=2)]
    health = evaluate_migration_health(history, current_user="deploy")
    assert health.status == MigrationHealthStatus.HEALTHY
    assert [(w.code, w.message) for w in health.warnings] == [
        ("MULTIPLE_INSTALLERS", "Migrations were applied by 2 different users: deploy, flyway")
    ]


def test_health_credential_drift_warning():
    """The connected user differs from whoever applied the latest migration."""
    health = evaluate_migration_health(_history(1, 2), current_user="app")
    assert [w.code for w in health.warnings] == ["CREDENTIAL_DRIFT"]
    assert health.warnings[0].message == (
        "Latest migration was installed by flyway, but you are connected as app"
    )
    assert health.expected_user == "app"


def test_health_without_current_user_has_no_drift():
    """Credential drift needs a known connected user."""
    assert evaluate_migration_health(_history(1)).warnings == []


def test_assess_environment_migrations(snapshot_factory):
    """Unreadable history counts as not configured."""
    denied = EnvironmentCapabilityMatrix(
        flyway_history=CapabilityStatus.create_unavailable("permission denied")
    )
    hidden = snapshot_factory(capabilities=denied, migration_history=_history(1))
    assert assess_environment_migrations(hidden).status == MigrationHealthStatus.NOT_CONFIGURED

    visible = snapshot_factory(name="staging", migration_history=_history(1),
                               current_user="app")
    health = assess_environment_migrations(visible)
    assert health.environment_name == "staging"
    assert health.status == MigrationHealthStatus.HEALTHY
    assert [w.code for w in health.warnings] == ["CREDENTIAL_DRIFT"]
