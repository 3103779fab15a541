"""Command-line interface for schemadx - schema diagnostic reasoning engine."""
import argparse
import logging
import sys
from typing import Iterable, List, Optional

from schemadx.config.settings import EngineConfig, load_engine_config
from schemadx.core.aggregate import DriftFilter
from schemadx.core.analyze import compare_environments, diagnose_table
from schemadx.core.migrations import assess_environment_migrations
from schemadx.core.sql_analysis import analyze_statement
from schemadx.input.loader import load_snapshot, load_table_metadata
from schemadx.models.drift import MigrationHealth, MigrationHealthStatus
from schemadx.models.finding import Severity
from schemadx.models.metadata import TableMetadata
from schemadx.output.json import render_json
from schemadx.providers import get_provider

logger = logging.getLogger(__name__)

FAIL_ON_LEVELS = {
    'ERROR': {Severity.ERROR},
    'WARN': {Severity.ERROR, Severity.WARN},
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr
    )


def _select_table(tables: List[TableMetadata], name: Optional[str]) -> TableMetadata:
    """Pick the table to diagnose from a loaded file."""
    if name:
        matches = [t for t in tables if name in (t.table_name, t.qualified_name)]
        if not matches:
            available = ', '.join(t.qualified_name for t in tables)
            raise ValueError(f"Table '{name}' not found. Available: {available}")
        return matches[0]

    if len(tables) > 1:
        available = ', '.join(t.qualified_name for t in tables)
        raise ValueError(f"Input holds {len(tables)} tables; choose one with --name: {available}")
    return tables[0]


def _handle_exit_code(fail_on: Optional[str], severities: Iterable[Severity]) -> None:
    if not fail_on:
        return
    if any(severity in FAIL_ON_LEVELS[fail_on] for severity in severities):
        sys.exit(1)


def run_diagnose(args) -> None:
    """Execute the diagnose command."""
    try:
        config: EngineConfig = load_engine_config(args.config)
        tables = load_table_metadata(args.table, dialect=args.dialect)
        meta = _select_table(tables, args.name)
        profile = args.profile or config.expected_profile

        diagnosis = diagnose_table(meta, expected_profile=profile, vocabulary=config.vocabulary)

        if args.access_only:
            if diagnosis.access is None:
                raise ValueError(f"No privileges captured for {meta.qualified_name}")
            print(render_json(diagnosis.access))
        else:
            print(render_json(diagnosis))

        _handle_exit_code(args.fail_on, [f.severity for f in diagnosis.findings])
        sys.exit(0)

    except Exception as e:  # pylint: disable=broad-except
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def run_compare(args) -> None:
    """Execute the compare command."""
    providers = []
    try:
        config: EngineConfig = load_engine_config(args.config)

        source_provider = get_provider(
            'snapshot', snapshot=load_snapshot(args.source, dialect=args.dialect)
        )
        providers.append(source_provider)
        target_provider = get_provider(
            'snapshot', snapshot=load_snapshot(args.target, dialect=args.dialect)
        )
        providers.append(target_provider)

        source = source_provider.fetch_snapshot(args.schema or source_provider.snapshot.schema_name)
        target = target_provider.fetch_snapshot(args.schema or target_provider.snapshot.schema_name)

        drift_filter = DriftFilter(
            only_differences=args.only_differences,
            severity_filter=args.severity,
            search_query=args.search or ''
        )
        comparison = compare_environments(
            source, target,
            max_match_items=config.max_match_items,
            drift_filter=drift_filter
        )
        print(render_json(comparison))

        severities = [
            item.severity
            for section in comparison.drift_sections
            for item in section.drift_items
        ]
        _handle_exit_code(args.fail_on, severities)
        sys.exit(0)

    except Exception as e:  # pylint: disable=broad-except
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        for provider in providers:
            provider.close()


def _read_statement(args) -> str:
    if args.file:
        with open(args.file, 'r', encoding='utf-8') as f:
            return f.read()
    return args.statement


def run_sql(args) -> None:
    """Execute the sql command."""
    try:
        if not args.statement and not args.file:
            raise ValueError("Provide a statement or --file")
        config: EngineConfig = load_engine_config(args.config)
        tables = load_table_metadata(args.metadata, dialect=args.dialect)

        analysis = analyze_statement(
            _read_statement(args), tables,
            schema=args.schema,
            dialect=args.dialect,
            vocabulary=config.vocabulary
        )
        print(render_json(analysis))

        if not analysis.is_valid:
            raise ValueError(analysis.parse_error)
        _handle_exit_code(args.fail_on, [f.severity for f in analysis.findings])
        sys.exit(0)

    except Exception as e:  # pylint: disable=broad-except
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _health_severities(health: MigrationHealth) -> List[Severity]:
    """FAILED counts as an error; any other unhealthy state or warning as a warning."""
    severities = [Severity.WARN] * len(health.warnings)
    if health.status == MigrationHealthStatus.FAILED:
        severities.append(Severity.ERROR)
    elif health.status != MigrationHealthStatus.HEALTHY:
        severities.append(Severity.WARN)
    return severities


def run_migrations(args) -> None:
    """Execute the migrations command."""
    provider = None
    try:
        provider = get_provider('snapshot', snapshot=load_snapshot(args.snapshot,
                                                                    dialect=args.dialect))
        snapshot = provider.fetch_snapshot(provider.snapshot.schema_name)
        if args.user:
            snapshot = snapshot.model_copy(update={'current_user': args.user})

        health = assess_environment_migrations(snapshot)
        print(render_json(health))

        _handle_exit_code(args.fail_on, _health_severities(health))
        sys.exit(0)

    except Exception as e:  # pylint: disable=broad-except
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if provider is not None:
            provider.close()


def main():
    """Parse command line arguments and execute appropriate command."""
    parser = argparse.ArgumentParser(
        description="schemadx - schema diagnostic reasoning engine",
        epilog="Examples:\n"
               "  Diagnose:  schemadx diagnose --table cart_item.json --profile read-write\n"
               "  DDL:       schemadx diagnose --table schema.sql --name cart_item\n"
               "  Compare:   schemadx compare --source prod.json --target staging.json "
               "--only-differences\n"
               "  SQL:       schemadx sql \"DELETE FROM users WHERE id = 1\" --metadata schema.sql\n"
               "  Flyway:    schemadx migrations --snapshot prod.json --user app",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging on stderr"
    )
    subparsers = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        help="Path to engine config file (default: ~/.schemadx/config.yaml)"
    )
    common.add_argument(
        "--dialect", default="postgres",
        choices=["postgres", "mysql", "snowflake", "bigquery", "redshift", "databricks"],
        help="SQL dialect for parsing DDL files (default: postgres)"
    )
    common.add_argument(
        "--fail-on", choices=["ERROR", "WARN"], default=None,
        help="Exit with code 1 if any finding meets or exceeds this severity"
    )

    diagnose_parser = subparsers.add_parser(
        "diagnose", parents=[common],
        help="Diagnose a single table",
        description="Classify foreign key risk, failure patterns, access and impact of a table"
    )
    diagnose_parser.add_argument(
        "--table", required=True,
        help="Table metadata: JSON/YAML file or SQL DDL file"
    )
    diagnose_parser.add_argument(
        "--name",
        help="Table to diagnose when the file holds several (table or schema.table)"
    )
    diagnose_parser.add_argument(
        "--profile", choices=["read-only", "read-write", "admin"],
        help="Expected access profile (default: from config, read-write)"
    )
    diagnose_parser.add_argument(
        "--access-only", action="store_true",
        help="Print only the access report"
    )

    compare_parser = subparsers.add_parser(
        "compare", parents=[common],
        help="Compare two environments for schema drift",
        description="Compare a source and a target environment snapshot"
    )
    compare_parser.add_argument(
        "--source", required=True,
        help="Source environment snapshot: JSON/YAML file or SQL DDL file"
    )
    compare_parser.add_argument(
        "--target", required=True,
        help="Target environment snapshot: JSON/YAML file or SQL DDL file"
    )
    compare_parser.add_argument(
        "--schema",
        help="Schema to compare (default: the snapshot's schema)"
    )
    compare_parser.add_argument(
        "--only-differences", action="store_true",
        help="Hide MATCH items from the visible item list"
    )
    compare_parser.add_argument(
        "--severity", choices=["all", "ERROR", "WARN", "INFO"], default="all",
        help="Show only visible items of this severity (default: all)"
    )
    compare_parser.add_argument(
        "--search",
        help="Search visible items; supports table:, column:, index:, constraint:, "
             "migration: and * wildcards"
    )

    sql_parser = subparsers.add_parser(
        "sql", parents=[common],
        help="Analyze a DML statement before running it",
        description="Predict index coverage, constraint violations and cascades of a statement"
    )
    sql_parser.add_argument(
        "statement", nargs="?",
        help="SELECT, INSERT, UPDATE or DELETE statement"
    )
    sql_parser.add_argument(
        "--file",
        help="Read the statement from this file instead"
    )
    sql_parser.add_argument(
        "--metadata", required=True,
        help="Table metadata the statement runs against: JSON/YAML file or SQL DDL file"
    )
    sql_parser.add_argument(
        "--schema", default="public",
        help="Schema for unqualified table names (default: public)"
    )

    migrations_parser = subparsers.add_parser(
        "migrations", parents=[common],
        help="Check migration history health of one environment",
        description="Report failed migrations, installers and credential drift"
    )
    migrations_parser.add_argument(
        "--snapshot", required=True,
        help="Environment snapshot: JSON/YAML file or SQL DDL file"
    )
    migrations_parser.add_argument(
        "--user",
        help="Database user the application connects as (default: the snapshot's user)"
    )

    args = parser.parse_args()
    _configure_logging(args.verbose)

    if args.command == "diagnose":
        run_diagnose(args)
    elif args.command == "compare":
        run_compare(args)
    elif args.command == "sql":
        run_sql(args)
    elif args.command == "migrations":
        run_migrations(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
