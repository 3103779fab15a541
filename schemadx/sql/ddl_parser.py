"""DDL (Data Definition Language) parser producing table metadata."""
import logging
from typing import Dict, List, Optional, Tuple

import sqlglot
from sqlglot import exp

from schemadx.models.metadata import Column, Constraint, ConstraintType, Index, TableMetadata

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = 'public'

_TableKey = Tuple[str, str]


def parse_ddl_to_metadata(
    ddl_sql: str,
    dialect: str = 'postgres',
    owner: str = '',
    current_user: str = ''
) -> List[TableMetadata]:
    """Parse CREATE TABLE, CREATE INDEX and COMMENT ON statements to table metadata.

    Supports:
    - CREATE TABLE with column types, NOT NULL, DEFAULT and inline
      PRIMARY KEY / UNIQUE / REFERENCES / CHECK
    - Table-level PRIMARY KEY, FOREIGN KEY, UNIQUE and CHECK, named or unnamed
    - CREATE [UNIQUE] INDEX ... [USING method] (columns)
    - COMMENT ON TABLE / COLUMN

    Unnamed constraints get PostgreSQL's default names, and a primary key yields
    its ``<table>_pkey`` index. Gracefully handles unsupported statements by
    logging and skipping. Never raises an exception; returns empty list on
    complete failure.

    Args:
        ddl_sql: DDL SQL text (one or more statements)
        dialect: SQL dialect for parsing (default: 'postgres')
        owner: Owner recorded on every parsed table
        current_user: Connected user recorded on every parsed table

    Returns:
        List of TableMetadata in declaration order.
    """
    drafts: Dict[_TableKey, dict] = {}

    try:
        statements = sqlglot.parse(ddl_sql, read=dialect)

        for stmt in statements:
            if not stmt:
                continue

            if isinstance(stmt, exp.Create) and str(stmt.args.get('kind', '')).upper() == 'TABLE':
                draft = _handle_create_table(stmt, dialect)
                if draft:
                    drafts[(draft['schema'], draft['table'])] = draft

            elif isinstance(stmt, exp.Create) and str(stmt.args.get('kind', '')).upper() == 'INDEX':
                _handle_create_index(stmt, drafts, dialect)

            elif isinstance(stmt, exp.Comment):
                _handle_comment(stmt, drafts)

            else:
                logger.debug("Skipping unsupported statement type: %s", type(stmt).__name__)
                logger.debug("Statement SQL: %s", stmt.sql())

        return [_build_table(draft, owner, current_user) for draft in drafts.values()]

    except Exception as e:  # pylint: disable=broad-except
        logger.warning("DDL parsing failed: %s", e)
        return []


def _name_of(expr) -> str:
    """Plain identifier text of a column reference, ordered column or identifier."""
    if isinstance(expr, exp.Ordered):
        expr = expr.this
    return expr.name if hasattr(expr, 'name') else str(expr)


def _column_names(exprs) -> List[str]:
    return [name for name in (_name_of(e) for e in exprs or []) if name]


def _table_context(table_expr: exp.Table) -> Optional[_TableKey]:
    """Schema and table name of a table expression."""
    table_name = table_expr.name
    if not table_name:
        logger.debug("No table name found in statement")
        return None
    schema_name = table_expr.db or DEFAULT_SCHEMA
    return schema_name, table_name


def _lookup(drafts: Dict[_TableKey, dict], table_expr) -> Optional[dict]:
    """Find the draft for a table, tolerating an omitted schema."""
    if not isinstance(table_expr, exp.Table):
        return None
    key = _table_context(table_expr)
    if key is None:
        return None
    if key in drafts:
        return drafts[key]
    if not table_expr.db:
        for (_, table), draft in drafts.items():
            if table == key[1]:
                return draft
    return None


def _handle_create_table(stmt: exp.Create, dialect: str) -> Optional[dict]:
    """Extract a table draft from a CREATE TABLE statement."""
    try:
        schema_def = stmt.args.get('this')
        if not isinstance(schema_def, exp.Schema) or not isinstance(schema_def.this, exp.Table):
            logger.debug("No schema definition found in CREATE TABLE")
            return None

        context = _table_context(schema_def.this)
        if not context:
            return None
        schema_name, table_name = context

        draft = {
            'schema': schema_name,
            'table': table_name,
            'comment': None,
            'columns': [],
            'constraints': [],
            'indexes': [],
        }

        for expr in schema_def.expressions:
            if isinstance(expr, exp.ColumnDef):
                _handle_column(expr, draft, dialect)
            else:
                name = None
                kinds = [expr]
                if isinstance(expr, exp.Constraint):
                    name = expr.name or None
                    kinds = expr.expressions
                for kind in kinds:
                    constraint = _table_constraint(kind, name, table_name, dialect)
                    if constraint:
                        draft['constraints'].append(constraint)

        if not draft['columns']:
            logger.warning("CREATE TABLE %s has no columns", table_name)
            return None

        _apply_primary_key(draft)
        return draft

    except Exception as e:  # pylint: disable=broad-except
        logger.warning("Failed to extract CREATE TABLE: %s", e)
        return None


def _handle_column(col_expr: exp.ColumnDef, draft: dict, dialect: str) -> None:
    """Extract a column and its inline constraints."""
    col_name = col_expr.name
    if not col_name:
        return

    table_name = draft['table']
    column = {
        'name': col_name,
        'ordinal_position': len(draft['columns']) + 1,
        'data_type': col_expr.kind.sql(dialect=dialect) if col_expr.kind else 'TEXT',
        'nullable': True,
        'column_default': None,
        'comment': None,
    }

    for constraint in col_expr.constraints or []:
        if not isinstance(constraint, exp.ColumnConstraint):
            continue
        kind = constraint.kind
        name = constraint.name or None

        if isinstance(kind, exp.NotNullColumnConstraint):
            if kind.args.get('allow_null'):
                continue
            column['nullable'] = False
            draft['constraints'].append(Constraint(
                name=name or f"{table_name}_{col_name}_not_null",
                type="NOT NULL",
                columns=[col_name],
                definition=f"{col_name} NOT NULL"
            ))
        elif isinstance(kind, exp.DefaultColumnConstraint):
            column['column_default'] = kind.this.sql(dialect=dialect)
        elif isinstance(kind, exp.PrimaryKeyColumnConstraint):
            draft['constraints'].append(Constraint(
                name=name or f"{table_name}_pkey",
                type=ConstraintType.PRIMARY_KEY,
                columns=[col_name],
                definition=f"PRIMARY KEY ({col_name})"
            ))
        elif isinstance(kind, exp.UniqueColumnConstraint):
            draft['constraints'].append(Constraint(
                name=name or f"{table_name}_{col_name}_key",
                type=ConstraintType.UNIQUE,
                columns=[col_name],
                definition=f"UNIQUE ({col_name})"
            ))
        elif isinstance(kind, exp.Reference):
            draft['constraints'].append(Constraint(
                name=name or f"{table_name}_{col_name}_fkey",
                type=ConstraintType.FOREIGN_KEY,
                columns=[col_name],
                definition=f"FOREIGN KEY ({col_name}) {kind.sql(dialect=dialect)}"
            ))
        elif isinstance(kind, exp.CheckColumnConstraint):
            draft['constraints'].append(Constraint(
                name=name or f"{table_name}_{col_name}_check",
                type=ConstraintType.CHECK,
                columns=[col_name],
                definition=kind.sql(dialect=dialect)
            ))

    draft['columns'].append(column)


def _table_constraint(kind, name: Optional[str], table_name: str,
                      dialect: str) -> Optional[Constraint]:
    """Build a table-level constraint, or None for unsupported expressions."""
    definition = kind.sql(dialect=dialect)

    if isinstance(kind, exp.PrimaryKey):
        return Constraint(
            name=name or f"{table_name}_pkey",
            type=ConstraintType.PRIMARY_KEY,
            columns=_column_names(kind.expressions),
            definition=definition
        )

    if isinstance(kind, exp.ForeignKey):
        columns = _column_names(kind.expressions)
        return Constraint(
            name=name or f"{table_name}_{'_'.join(columns)}_fkey",
            type=ConstraintType.FOREIGN_KEY,
            columns=columns,
            definition=definition
        )

    if isinstance(kind, exp.UniqueColumnConstraint):
        target = kind.this
        columns = _column_names(target.expressions) if isinstance(target, exp.Schema) else []
        return Constraint(
            name=name or f"{table_name}_{'_'.join(columns)}_key",
            type=ConstraintType.UNIQUE,
            columns=columns,
            definition=definition
        )

    if isinstance(kind, exp.CheckColumnConstraint):
        return Constraint(
            name=name or f"{table_name}_check",
            type=ConstraintType.CHECK,
            columns=[],
            definition=definition
        )

    logger.debug("Skipping unsupported table element: %s", type(kind).__name__)
    return None


def _apply_primary_key(draft: dict) -> None:
    """Primary key columns are NOT NULL and backed by a unique btree index."""
    primary = next(
        (c for c in draft['constraints'] if c.type == ConstraintType.PRIMARY_KEY), None
    )
    if primary is None:
        return

    for column in draft['columns']:
        if column['name'] in primary.columns:
            column['nullable'] = False

    index_name = f"{draft['table']}_pkey"
    draft['indexes'].append(Index(
        name=index_name,
        columns=list(primary.columns),
        primary=True,
        unique=True,
        access_method='btree',
        definition=(
            f"CREATE UNIQUE INDEX {index_name} ON {draft['schema']}.{draft['table']} "
            f"USING btree ({', '.join(primary.columns)})"
        )
    ))


def _handle_create_index(stmt: exp.Create, drafts: Dict[_TableKey, dict], dialect: str) -> None:
    """Attach a CREATE INDEX statement to its (previously created) table."""
    try:
        index = stmt.this
        if not isinstance(index, exp.Index):
            logger.debug("No index definition found in CREATE INDEX")
            return

        draft = _lookup(drafts, index.args.get('table'))
        if draft is None:
            logger.debug("Skipping index %s on a table not declared in this DDL", index.name)
            return

        params = index.args.get('params')
        columns = (params.args.get('columns') if params else None) or index.args.get('columns')
        using = (params.args.get('using') if params else None) or index.args.get('using')
        access_method = _name_of(using).lower() if using is not None else 'btree'

        draft['indexes'].append(Index(
            name=index.name,
            columns=_column_names(columns),
            unique=bool(stmt.args.get('unique') or index.args.get('unique')),
            access_method=access_method or 'btree',
            definition=stmt.sql(dialect=dialect)
        ))

    except Exception as e:  # pylint: disable=broad-except
        logger.warning("Failed to extract CREATE INDEX: %s", e)


def _handle_comment(stmt: exp.Comment, drafts: Dict[_TableKey, dict]) -> None:
    """Apply COMMENT ON TABLE / COLUMN."""
    kind = str(stmt.args.get('kind', '')).upper()
    text = stmt.expression.name if stmt.expression is not None else None
    target = stmt.this

    if kind == 'TABLE':
        draft = _lookup(drafts, target)
        if draft is not None:
            draft['comment'] = text
        return

    if kind == 'COLUMN' and isinstance(target, exp.Column):
        table_expr = exp.Table(
            this=exp.to_identifier(target.table),
            db=exp.to_identifier(target.db) if target.db else None
        )
        draft = _lookup(drafts, table_expr)
        if draft is None:
            return
        for column in draft['columns']:
            if column['name'] == target.name:
                column['comment'] = text
        return

    logger.debug("Skipping COMMENT ON %s", kind)


def _build_table(draft: dict, owner: str, current_user: str) -> TableMetadata:
    return TableMetadata(
        schema_name=draft['schema'],
        table_name=draft['table'],
        owner=owner,
        current_user=current_user,
        comment=draft['comment'],
        columns=[Column(**column) for column in draft['columns']],
        constraints=draft['constraints'],
        indexes=draft['indexes']
    )
