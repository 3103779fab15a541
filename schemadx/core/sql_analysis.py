"""Pre-execution analysis of a single DML statement against table metadata."""
import logging
from typing import List, Optional, Union

from schemadx.config.settings import RiskVocabulary
from schemadx.core.aggregate import sort_findings
from schemadx.core.cascade import DEFAULT_INSPECTOR, CascadeInspector
from schemadx.models.finding import Finding, Severity
from schemadx.models.metadata import ConstraintType, TableMetadata
from schemadx.models.results import StatementAnalysis
from schemadx.models.statement import CascadeImpact, ConstraintRisks, IndexCoverage
from schemadx.sql.statement_parser import ParsedStatement, SqlOperation, parse_statement

logger = logging.getLogger(__name__)

DEFAULT_VOCABULARY = RiskVocabulary()
HIGH_CASCADE_COUNT = 5
ROOT_ENTITY_CASCADE_COUNT = 2
_KEY_TYPES = (ConstraintType.PRIMARY_KEY, ConstraintType.UNIQUE)


def _lower(columns) -> List[str]:
    return [c.strip().lower() for c in columns if c and c.strip()]


def analyze_index_coverage(meta: TableMetadata, where_columns: List[str]) -> IndexCoverage:
    """Match the WHERE columns of a statement against the table's indexes.

    Per index, first matching rule wins:
    1. Same column set -> exact match
    2. Index contains every WHERE column -> covers all columns
    3. Index leads with a WHERE column -> prefix match (partial coverage)
    """
    if not where_columns:
        return IndexCoverage(table_name=meta.table_name)

    wanted = _lower(where_columns)
    wanted_set = set(wanted)
    matched = []
    has_composite = False
    has_partial = False

    for index in meta.indexes:
        index_cols = _lower(index.columns)
        if not index_cols:
            continue
        if set(index_cols) == wanted_set:
            matched.append(f"{index.name} (exact match)")
            has_composite = True
        elif wanted_set.issubset(index_cols):
            matched.append(f"{index.name} (covers all columns)")
            has_composite = True
        elif index_cols[0] in wanted_set:
            matched.append(f"{index.name} (prefix match)")
            has_partial = True

    suggestions = []
    if not has_composite:
        if len(where_columns) > 1:
            name = f"idx_{meta.table_name}_composite"
        else:
            name = f"idx_{meta.table_name}_{where_columns[0]}"
        suggestions.append(
            f"CREATE INDEX {name} ON {meta.table_name} ({', '.join(where_columns)});"
        )

    return IndexCoverage(
        table_name=meta.table_name,
        query_columns=list(where_columns),
        has_composite_index=has_composite,
        has_partial_coverage=has_partial,
        matched_indexes=matched,
        suggested_indexes=suggestions
    )


def _key_columns(meta: TableMetadata) -> List[str]:
    columns = []
    for constraint in meta.constraints:
        if constraint.type in _KEY_TYPES:
            columns.extend(c for c in constraint.columns if c not in columns)
    return columns


def _fk_columns(meta: TableMetadata) -> List[str]:
    columns = []
    for fk in meta.foreign_keys:
        columns.extend(c for c in fk.columns if c not in columns)
    return columns


def _checks_touching(meta: TableMetadata, columns: List[str]) -> List[str]:
    """CHECK constraints on any of ``columns``; checks without known columns always count."""
    touched = set(_lower(columns))
    return [
        c.display_name for c in meta.constraints
        if c.type == ConstraintType.CHECK
        and (not c.columns or touched.intersection(_lower(c.columns)))
    ]


def analyze_insert_risks(meta: TableMetadata, columns: List[str]) -> ConstraintRisks:
    """Constraints an INSERT providing ``columns`` may violate."""
    provided = set(_lower(columns))
    missing = [
        col.name for col in meta.columns
        if not col.nullable and col.column_default is None and col.name.lower() not in provided
    ]
    return ConstraintRisks(
        table_name=meta.table_name,
        missing_not_null_columns=missing,
        unique_constraint_columns=_key_columns(meta),
        foreign_key_columns=[c for c in _fk_columns(meta) if c.lower() in provided],
        check_constraints=_checks_touching(meta, columns)
    )


def analyze_update_risks(meta: TableMetadata, columns: List[str]) -> ConstraintRisks:
    """Constraints an UPDATE setting ``columns`` may violate."""
    updated = set(_lower(columns))
    return ConstraintRisks(
        table_name=meta.table_name,
        unique_constraint_columns=[c for c in _key_columns(meta) if c.lower() in updated],
        foreign_key_columns=[c for c in _fk_columns(meta) if c.lower() in updated],
        check_constraints=_checks_touching(meta, columns)
    )


def _cascade_depth(count: int, recursive: bool) -> str:
    if recursive:
        return "HIGH (recursive detected)"
    if count >= HIGH_CASCADE_COUNT:
        return f"HIGH ({count} tables)"
    if count >= 2:
        return f"MEDIUM ({count} tables)"
    if count == 1:
        return "LOW (1 table)"
    return "NONE"


def analyze_cascade_impact(meta: TableMetadata, tables: List[TableMetadata],
                           inspector: Optional[CascadeInspector] = None) -> CascadeImpact:
    """Tables whose rows a DELETE on ``meta`` removes or rewrites.

    A foreign key counts when it references ``meta`` and its delete rule is
    CASCADE, SET NULL or SET DEFAULT. ``tables`` is the catalog to search and
    may include ``meta`` itself.
    """
    inspector = inspector or DEFAULT_INSPECTOR
    affected = []
    for table in tables:
        for fk in table.foreign_keys:
            rule = inspector.delete_rule(fk)
            if rule and inspector.references(fk, meta.schema_name, meta.table_name):
                entry = f"{table.qualified_name} ({rule})"
                if entry not in affected:
                    affected.append(entry)

    recursive = any(
        inspector.is_self_reference(fk, meta.schema_name, meta.table_name)
        for fk in meta.foreign_keys
    )
    return CascadeImpact(
        table_name=meta.table_name,
        cascading_foreign_keys=len(affected),
        affected_tables=affected,
        has_recursive_cascade=recursive,
        cascade_depth=_cascade_depth(len(affected), recursive)
    )


def _select_findings(parsed: ParsedStatement, coverage: IndexCoverage) -> List[Finding]:
    if not parsed.where_columns:
        return []
    if coverage.has_composite_index:
        return [Finding(
            severity=Severity.INFO, category="Index Coverage", title="Optimal Index Coverage",
            description="An index covers every WHERE column",
            recommendation="Query should perform well"
        )]
    if coverage.has_partial_coverage:
        return [Finding(
            severity=Severity.WARN, category="Index Coverage", title="Partial Index Coverage",
            description="Only partial index coverage found. Query may be slower than optimal.",
            recommendation="Consider creating: " + ' '.join(coverage.suggested_indexes),
            evidence=list(coverage.matched_indexes)
        )]
    return [Finding(
        severity=Severity.ERROR, category="Index Coverage", title="No Index Found",
        description="No indexes found for WHERE clause columns: "
                    + ', '.join(parsed.where_columns),
        recommendation="Create index: " + ' '.join(coverage.suggested_indexes)
    )]


def _constraint_findings(risks: ConstraintRisks, operation: SqlOperation) -> List[Finding]:
    findings = []
    if risks.missing_not_null_columns:
        findings.append(Finding(
            severity=Severity.ERROR, category="Constraint Violation",
            title="Missing NOT NULL Columns",
            description="Required columns not provided: "
                        + ', '.join(risks.missing_not_null_columns),
            recommendation="Include all NOT NULL columns in INSERT statement"
        ))
    if risks.unique_constraint_columns:
        updating = operation == SqlOperation.UPDATE
        findings.append(Finding(
            severity=Severity.WARN, category="Constraint Validation",
            title="Potential UNIQUE Constraint Conflict",
            description=("Columns with UNIQUE constraints being updated: " if updating
                         else "Columns with UNIQUE constraints: ")
                        + ', '.join(risks.unique_constraint_columns),
            recommendation=("Ensure new values maintain uniqueness" if updating
                            else "Ensure values are unique or handle conflicts with ON CONFLICT")
        ))
    if risks.foreign_key_columns:
        updating = operation == SqlOperation.UPDATE
        findings.append(Finding(
            severity=Severity.WARN, category="Foreign Key",
            title="Updating Foreign Key Columns" if updating else "Foreign Key Columns Present",
            description=("Foreign key columns being updated: " if updating
                         else "Foreign key columns: ")
                        + ', '.join(risks.foreign_key_columns),
            recommendation=("Ensure new values reference valid records" if updating
                            else "Ensure referenced records exist before INSERT")
        ))
    if risks.check_constraints:
        findings.append(Finding(
            severity=Severity.WARN, category="Constraint Validation",
            title="Potential CHECK Constraint Violation",
            description="CHECK constraints on affected columns: "
                        + ', '.join(risks.check_constraints),
            recommendation="Validate values against the CHECK conditions before executing"
        ))
    return findings


def _update_scope_findings(parsed: ParsedStatement, coverage: Optional[IndexCoverage]):
    if not parsed.where_columns:
        return [Finding(
            severity=Severity.ERROR, category="Dangerous Operation",
            title=f"{parsed.operation.value} Without WHERE Clause",
            description=f"This will {parsed.operation.value} ALL rows in the table",
            recommendation="Add WHERE clause to limit scope"
        )]
    if (parsed.operation == SqlOperation.UPDATE and coverage is not None
            and not coverage.has_composite_index and coverage.matched_indexes):
        return [Finding(
            severity=Severity.WARN, category="Update Performance",
            title="UPDATE May Affect Multiple Rows",
            description="WHERE clause may match multiple rows without optimal index",
            recommendation="Review WHERE clause specificity"
        )]
    return []


def _cascade_findings(meta: TableMetadata, cascade: CascadeImpact,
                      vocabulary: RiskVocabulary) -> List[Finding]:
    if cascade.cascading_foreign_keys == 0:
        return []

    count = cascade.cascading_foreign_keys
    severe = cascade.has_recursive_cascade or count >= HIGH_CASCADE_COUNT
    findings = [Finding(
        severity=Severity.ERROR if severe else Severity.WARN,
        category="Cascade Delete",
        title="Cascading Delete Detected",
        description=f"DELETE will cascade to {count} related table(s): "
                    + ', '.join(cascade.affected_tables),
        recommendation=("Recursive cascade detected! Review carefully before executing."
                        if cascade.has_recursive_cascade
                        else "Review cascade impact before executing DELETE"),
        evidence=list(cascade.affected_tables)
    )]

    root_entities = {e.lower() for e in vocabulary.root_entities}
    if meta.table_name.lower() in root_entities and count >= ROOT_ENTITY_CASCADE_COUNT:
        findings.append(Finding(
            severity=Severity.ERROR,
            category="Dangerous Operation",
            title="DELETE Targets Root Entity",
            description=(f"This DELETE targets a root entity ({meta.table_name}) with ON DELETE "
                         f"CASCADE. Cascades may remove large portions of related data across "
                         f"{count} table(s)."),
            recommendation=("Consider soft-delete pattern or manual cleanup for root entities. "
                            "Verify this is intentional and document the blast radius.")
        ))
    return findings


def summarize_outcome(operation: SqlOperation, findings: List[Finding],
                      coverage: Optional[IndexCoverage] = None,
                      cascade: Optional[CascadeImpact] = None) -> str:
    """One-line verdict for an analyzed statement."""
    errors = sum(1 for f in findings if f.severity == Severity.ERROR)
    warnings = sum(1 for f in findings if f.severity == Severity.WARN)

    if operation == SqlOperation.SELECT:
        if errors:
            return "Query has issues that may cause failures or poor performance."
        if warnings:
            return "Query will work but may have suboptimal performance."
        if coverage is not None and coverage.has_composite_index:
            return "Query is well indexed and should perform efficiently."
        return "Query structure is valid."
    if operation == SqlOperation.INSERT:
        if errors:
            return "INSERT will fail due to missing NOT NULL columns."
        if warnings:
            return "INSERT may fail due to constraint violations depending on values."
        return "INSERT statement structure is valid."
    if operation == SqlOperation.UPDATE:
        if errors:
            return "UPDATE has dangerous patterns that should be reviewed."
        if warnings:
            return "UPDATE may affect multiple rows or trigger constraint checks."
        return "UPDATE statement appears safe."
    if operation == SqlOperation.DELETE:
        if cascade is not None and cascade.cascading_foreign_keys > 0:
            count = cascade.cascading_foreign_keys
            return f"DELETE will cascade to {count} related table{'' if count == 1 else 's'}."
        if errors:
            return "DELETE has dangerous patterns that must be fixed."
        return "DELETE statement appears safe."
    return "Analysis complete."


def _find_table(tables: List[TableMetadata], parsed: ParsedStatement,
                default_schema: str) -> Optional[TableMetadata]:
    schema = parsed.schema_name or default_schema
    for table in tables:
        if table.table_name == parsed.table_name and table.schema_name == schema:
            return table
    if parsed.schema_name is None:
        for table in tables:
            if table.table_name == parsed.table_name:
                return table
    return None


def analyze_statement(
    sql: str,
    tables: List[TableMetadata],
    schema: str = 'public',
    dialect: str = 'postgres',
    operation: Optional[Union[SqlOperation, str]] = None,
    vocabulary: Optional[RiskVocabulary] = None,
    inspector: Optional[CascadeInspector] = None
) -> StatementAnalysis:
    """Predict what a statement will do to the tables it touches.

    Args:
        sql: A single SELECT, INSERT, UPDATE or DELETE statement
        tables: Catalog the statement runs against; DELETE cascades are
            searched across all of it
        schema: Schema for unqualified table names
        dialect: sqlglot dialect for parsing
        operation: Overrides the detected operation when given
        vocabulary: Root entities for the DELETE root-entity warning
        inspector: Foreign key cascade inspector

    Returns:
        StatementAnalysis; an unparseable statement yields ``is_valid=False``
        with the parse error and no findings
    """
    vocabulary = vocabulary or DEFAULT_VOCABULARY
    parsed = parse_statement(sql, dialect=dialect)
    if not parsed.is_valid:
        return StatementAnalysis(
            operation=parsed.operation,
            analyzed_sql=sql,
            is_valid=False,
            parse_error=parsed.error_message
        )

    op = SqlOperation(operation) if operation else parsed.operation
    meta = _find_table(tables, parsed, schema)
    if meta is None:
        missing = Finding(
            severity=Severity.ERROR, category="Analysis Error", title="Failed to analyze SQL",
            description=f"Table '{parsed.table_name}' not found in the supplied metadata",
            recommendation="Verify table exists and its metadata was captured"
        )
        return StatementAnalysis(
            operation=op, analyzed_sql=sql, table_name=parsed.table_name,
            outcome_summary=summarize_outcome(op, [missing]),
            findings=[missing]
        )

    findings: List[Finding] = []
    coverage = None
    risks = None
    cascade = None

    if op == SqlOperation.SELECT:
        coverage = analyze_index_coverage(meta, parsed.where_columns)
        findings.extend(_select_findings(parsed, coverage))
    elif op == SqlOperation.INSERT:
        risks = analyze_insert_risks(meta, parsed.columns)
        findings.extend(_constraint_findings(risks, op))
    elif op == SqlOperation.UPDATE:
        if parsed.where_columns:
            coverage = analyze_index_coverage(meta, parsed.where_columns)
        findings.extend(_update_scope_findings(parsed, coverage))
        risks = analyze_update_risks(meta, parsed.columns)
        findings.extend(_constraint_findings(risks, op))
    elif op == SqlOperation.DELETE:
        if parsed.where_columns:
            coverage = analyze_index_coverage(meta, parsed.where_columns)
        findings.extend(_update_scope_findings(parsed, coverage))
        cascade = analyze_cascade_impact(meta, tables, inspector)
        findings.extend(_cascade_findings(meta, cascade, vocabulary))

    findings = sort_findings(findings)
    logger.debug("Analyzed %s on %s: %d finding(s)", op.value, meta.qualified_name, len(findings))

    return StatementAnalysis(
        operation=op,
        analyzed_sql=sql,
        table_name=meta.table_name,
        outcome_summary=summarize_outcome(op, findings, coverage, cascade),
        findings=findings,
        index_analysis=coverage,
        constraint_risks=risks,
        cascade_analysis=cascade
    )
