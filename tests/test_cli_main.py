"""Tests for test_cli_main."""
# pylint: disable=redefined-outer-name,unused-argument
import json
import sys
from unittest.mock import patch

import pytest

from schemadx.cli.main import main


@pytest.fixture
def isolated_home(tmp_path):
    """Keep a developer's ~/.schemadx/config.yaml out of the tests."""
    with patch('pathlib.Path.home', return_value=tmp_path):
        yield tmp_path


def _run(args):
    with patch.object(sys, 'argv', ["schemadx"] + args):
        with pytest.raises(SystemExit) as e:
            main()
    return e.value.code


def test_main_diagnose_success(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["diagnose", "--table", str(fixtures_dir / "cart_item.json")])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["kind"] == "table_diagnosis"
    assert output["table_name"] == "cart_item"
    assert output["foreign_key_risks"][0]["tier"] == "high"


def test_main_diagnose_fail_on_error(fixtures_dir, isolated_home, capsys):
    """SELECT-only grants fail the read-write profile."""
    code = _run(["diagnose", "--table", str(fixtures_dir / "cart_item.json"),
                 "--fail-on", "ERROR"])
    assert code == 1


def test_main_diagnose_read_only_profile(fixtures_dir, isolated_home, capsys):
    """Test function."""
    args = ["diagnose", "--table", str(fixtures_dir / "cart_item.json"),
            "--profile", "read-only"]
    assert _run(args + ["--fail-on", "ERROR"]) == 0
    assert _run(args + ["--fail-on", "WARN"]) == 1


def test_main_diagnose_access_only(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["diagnose", "--table", str(fixtures_dir / "cart_item.json"),
                 "--access-only"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["kind"] == "access_report"
    assert output["has_select_access"] is True
    assert output["has_write_access"] is False


def test_main_diagnose_ddl(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["diagnose", "--table", str(fixtures_dir / "schema.sql"),
                 "--name", "cart_item"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["table_name"] == "cart_item"
    assert output["cascading_fk_count"] == 1


def test_main_diagnose_ambiguous_table(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["diagnose", "--table", str(fixtures_dir / "schema.sql")])
    assert code == 1
    assert "choose one with --name" in capsys.readouterr().err


def test_main_diagnose_unknown_table(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["diagnose", "--table", str(fixtures_dir / "schema.sql"),
                 "--name", "invoice"])
    assert code == 1
    assert "Table 'invoice' not found" in capsys.readouterr().err


def test_main_diagnose_missing_file(tmp_path, isolated_home, capsys):
    """Test function."""
    code = _run(["diagnose", "--table", str(tmp_path / "nope.json")])
    assert code == 1
    assert "Input file not found" in capsys.readouterr().err


def test_main_diagnose_with_config(fixtures_dir, tmp_path, isolated_home, capsys):
    """Test function."""
    config_file = tmp_path / "engine.yaml"
    config_file.write_text("expected_profile: read-only\n")
    code = _run(["diagnose", "--table", str(fixtures_dir / "cart_item.json"),
                 "--config", str(config_file), "--fail-on", "ERROR"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["expected_profile"] == "read-only"


def test_main_compare_success(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["compare",
                 "--source", str(fixtures_dir / "prod_snapshot.json"),
                 "--target", str(fixtures_dir / "staging_snapshot.yaml")])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["kind"] == "environment_comparison"
    assert output["source_environment"] == "prod"
    assert output["target_environment"] == "staging"
    assert output["kpis"]["compatibility_errors"] == 1
    assert output["kpis"]["missing_migrations"] == 1


def test_main_compare_filters(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["compare",
                 "--source", str(fixtures_dir / "prod_snapshot.json"),
                 "--target", str(fixtures_dir / "staging_snapshot.yaml"),
                 "--only-differences", "--severity", "ERROR"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert [i["object_name"] for i in output["visible_items"]] == ["orders"]


def test_main_compare_fail_on_error(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["compare",
                 "--source", str(fixtures_dir / "prod_snapshot.json"),
                 "--target", str(fixtures_dir / "staging_snapshot.yaml"),
                 "--fail-on", "ERROR"])
    assert code == 1


def test_main_compare_identical(fixtures_dir, isolated_home, capsys):
    """Test function."""
    snapshot = str(fixtures_dir / "prod_snapshot.json")
    code = _run(["compare", "--source", snapshot, "--target", snapshot, "--fail-on", "WARN"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["mode"] == "FULL"
    assert output["conclusions"][0]["category"] == "Alignment"


def test_main_compare_unsupported_input(tmp_path, isolated_home, capsys):
    """Test function."""
    bad = tmp_path / "prod.txt"
    bad.write_text("nothing")
    code = _run(["compare", "--source", str(bad), "--target", str(bad)])
    assert code == 1
    assert "Unsupported input file" in capsys.readouterr().err


def test_main_no_command(capsys):
    """Test function."""
    assert _run([]) == 1


def test_main_sql_delete_cascade(fixtures_dir, isolated_home, capsys):
    """A DELETE on the parent reaches cart_item through ON DELETE CASCADE."""
    code = _run(["sql", "DELETE FROM cart WHERE id = 1",
                 "--metadata", str(fixtures_dir / "schema.sql")])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["kind"] == "statement_analysis"
    assert output["operation"] == "DELETE"
    assert output["cascade_analysis"]["affected_tables"] == ["public.cart_item (CASCADE)"]
    assert output["findings"][0]["title"] == "Cascading Delete Detected"


def test_main_sql_fail_on_warn(fixtures_dir, isolated_home, capsys):
    """Test function."""
    args = ["sql", "DELETE FROM cart WHERE id = 1",
            "--metadata", str(fixtures_dir / "schema.sql")]
    assert _run(args + ["--fail-on", "ERROR"]) == 0
    assert _run(args + ["--fail-on", "WARN"]) == 1


def test_main_sql_from_file(fixtures_dir, tmp_path, isolated_home, capsys):
    """Test function."""
    statement = tmp_path / "query.sql"
    statement.write_text("SELECT * FROM cart_item WHERE cart_id = 5")
    code = _run(["sql", "--file", str(statement),
                 "--metadata", str(fixtures_dir / "schema.sql"), "--fail-on", "WARN"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["index_analysis"]["matched_indexes"] == ["idx_cart_item_cart (exact match)"]


def test_main_sql_invalid_statement(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["sql", "DROP TABLE cart", "--metadata", str(fixtures_dir / "schema.sql")])
    assert code == 1
    assert "Unsupported SQL operation" in capsys.readouterr().err


def test_main_sql_requires_statement(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["sql", "--metadata", str(fixtures_dir / "schema.sql")])
    assert code == 1
    assert "Provide a statement or --file" in capsys.readouterr().err


def _write_history(tmp_path, history, **extra):
    snapshot = {"environment_name": "prod", "tables": [], "migration_history": history}
    snapshot.update(extra)
    path = tmp_path / "prod.json"
    path.write_text(json.dumps(snapshot))
    return str(path)


def test_main_migrations_healthy(fixtures_dir, isolated_home, capsys):
    """Test function."""
    code = _run(["migrations", "--snapshot", str(fixtures_dir / "prod_snapshot.json"),
                 "--fail-on", "WARN"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["kind"] == "migration_health"
    assert output["status"] == "HEALTHY"
    assert output["message"] == "Latest migration: 2 - create orders"


def test_main_migrations_failed(tmp_path, isolated_home, capsys):
    """A failed migration is an error for --fail-on."""
    path = _write_history(tmp_path, [
        {"installed_rank": 1, "version": "1", "installed_by": "flyway", "success": True},
        {"installed_rank": 2, "version": "2", "installed_by": "flyway", "success": False},
    ])
    assert _run(["migrations", "--snapshot", path, "--fail-on", "ERROR"]) == 1
    output = json.loads(capsys.readouterr().out)
    assert output["status"] == "FAILED"
    assert output["failed_count"] == 1


def test_main_migrations_credential_drift(tmp_path, isolated_home, capsys):
    """--user overrides the user captured with the snapshot."""
    path = _write_history(tmp_path, [
        {"installed_rank": 1, "version": "1", "installed_by": "flyway", "success": True},
    ], current_user="flyway")
    assert _run(["migrations", "--snapshot", path, "--fail-on", "WARN"]) == 0
    capsys.readouterr()

    args = ["migrations", "--snapshot", path, "--user", "app"]
    assert _run(args + ["--fail-on", "ERROR"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert [w["code"] for w in output["warnings"]] == ["CREDENTIAL_DRIFT"]
    assert _run(args + ["--fail-on", "WARN"]) == 1


def test_main_migrations_not_configured(fixtures_dir, isolated_home, capsys):
    """A DDL file carries no migration history."""
    code = _run(["migrations", "--snapshot", str(fixtures_dir / "schema.sql"),
                 "--fail-on", "WARN"])
    assert code == 1
    output = json.loads(capsys.readouterr().out)
    assert output["status"] == "NOT_CONFIGURED"
    assert output["history_available"] is False
