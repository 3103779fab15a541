"""Single DML statement parsing for pre-execution analysis."""
import logging
from enum import Enum
from typing import List, Optional

import sqlglot
from pydantic import BaseModel, ConfigDict
from sqlglot import exp
from sqlglot.errors import SqlglotError

logger = logging.getLogger(__name__)


class SqlOperation(str, Enum):
    """Statement kinds the analyzer understands."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNKNOWN = "UNKNOWN"


class ParsedStatement(BaseModel):
    """Structural facts pulled out of one statement.

    ``columns`` holds the INSERT column list or the UPDATE SET targets;
    ``where_columns`` the columns referenced by the WHERE clause, in order
    of appearance and without duplicates.
    """

    model_config = ConfigDict(frozen=True)

    operation: SqlOperation = SqlOperation.UNKNOWN
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    columns: List[str] = []
    where_columns: List[str] = []
    is_valid: bool = False
    error_message: Optional[str] = None


def _invalid(message: str, operation: SqlOperation = SqlOperation.UNKNOWN) -> ParsedStatement:
    return ParsedStatement(operation=operation, is_valid=False, error_message=message)


def _unique(names) -> List[str]:
    seen = []
    for name in names:
        if name and name not in seen:
            seen.append(name)
    return seen


def _where_columns(stmt: exp.Expression) -> List[str]:
    where = stmt.args.get("where")
    if where is None:
        return []
    return _unique(col.name for col in where.find_all(exp.Column, bfs=False))


def _target(table_expr) -> tuple:
    if not isinstance(table_expr, exp.Table):
        return None, None
    return (table_expr.db or None), table_expr.name


def _parse_select(stmt: exp.Select) -> ParsedStatement:
    schema, table = _target(stmt.find(exp.Table))
    if table is None:
        return _invalid("SELECT has no FROM table", SqlOperation.SELECT)
    return ParsedStatement(
        operation=SqlOperation.SELECT,
        schema_name=schema,
        table_name=table,
        where_columns=_where_columns(stmt),
        is_valid=True
    )


def _parse_insert(stmt: exp.Insert) -> ParsedStatement:
    target = stmt.this
    if not isinstance(target, exp.Schema):
        return _invalid("INSERT must list its target columns", SqlOperation.INSERT)
    schema, table = _target(target.this)
    return ParsedStatement(
        operation=SqlOperation.INSERT,
        schema_name=schema,
        table_name=table,
        columns=_unique(col.name for col in target.expressions),
        is_valid=table is not None,
        error_message=None if table else "Could not parse INSERT target"
    )


def _parse_update(stmt: exp.Update) -> ParsedStatement:
    schema, table = _target(stmt.this)
    if table is None:
        return _invalid("Could not parse UPDATE target", SqlOperation.UPDATE)
    set_columns = _unique(
        assignment.this.name for assignment in stmt.expressions
        if isinstance(assignment, exp.EQ) and isinstance(assignment.this, exp.Column)
    )
    return ParsedStatement(
        operation=SqlOperation.UPDATE,
        schema_name=schema,
        table_name=table,
        columns=set_columns,
        where_columns=_where_columns(stmt),
        is_valid=True
    )


def _parse_delete(stmt: exp.Delete) -> ParsedStatement:
    schema, table = _target(stmt.this)
    if table is None:
        return _invalid("Could not parse DELETE target", SqlOperation.DELETE)
    return ParsedStatement(
        operation=SqlOperation.DELETE,
        schema_name=schema,
        table_name=table,
        where_columns=_where_columns(stmt),
        is_valid=True
    )


_HANDLERS = {
    exp.Select: _parse_select,
    exp.Insert: _parse_insert,
    exp.Update: _parse_update,
    exp.Delete: _parse_delete,
}


def parse_statement(sql: str, dialect: str = 'postgres') -> ParsedStatement:
    """Parse exactly one SELECT, INSERT, UPDATE or DELETE statement.

    Never raises: empty input, multiple statements, syntax errors and other
    statement kinds all come back as an invalid ParsedStatement with a message.
    """
    if not sql or not sql.strip():
        return _invalid("SQL is empty")

    try:
        statements = [s for s in sqlglot.parse(sql, read=dialect) if s is not None]
    except SqlglotError as e:
        logger.warning("Statement parsing failed: %s", e)
        return _invalid(f"Parse error: {e}")

    if not statements:
        return _invalid("SQL is empty")
    if len(statements) > 1:
        return _invalid("Multiple statements detected. Only single statements are allowed.")

    stmt = statements[0]
    handler = _HANDLERS.get(type(stmt))
    if handler is None:
        logger.debug("Unsupported statement type: %s", type(stmt).__name__)
        return _invalid("Unsupported SQL operation")

    parsed = handler(stmt)
    logger.debug("Parsed %s on %s (where: %s)", parsed.operation.value,
                 parsed.table_name, parsed.where_columns)
    return parsed
