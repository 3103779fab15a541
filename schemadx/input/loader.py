"""Input file detection and loading."""
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, List

import yaml

from schemadx.models.drift import EnvironmentSnapshot
from schemadx.models.metadata import TableMetadata
from schemadx.sql.ddl_parser import parse_ddl_to_metadata

logger = logging.getLogger(__name__)


class InputType(Enum):
    """Types of metadata input files."""

    JSON = "json"  # captured TableMetadata / EnvironmentSnapshot
    YAML = "yaml"  # same payloads, hand-written
    SQL = "sql"    # CREATE TABLE / CREATE INDEX DDL


class InputResolutionError(ValueError):
    """Raised when input resolution fails."""


_EXTENSIONS = {
    '.json': InputType.JSON,
    '.yaml': InputType.YAML,
    '.yml': InputType.YAML,
    '.sql': InputType.SQL,
}


def resolve_input_type(path: str) -> InputType:
    """Detect the input type of a file from its extension.

    Raises:
        InputResolutionError: If the extension is not supported
    """
    suffix = Path(path).suffix.lower()
    if suffix not in _EXTENSIONS:
        raise InputResolutionError(
            f"Unsupported input file: {path}. "
            f"Supported extensions: {', '.join(sorted(_EXTENSIONS))}"
        )
    return _EXTENSIONS[suffix]


def _read_text(path: str) -> str:
    if not os.path.exists(path):
        raise InputResolutionError(f"Input file not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except OSError as e:
        raise InputResolutionError(f"Error reading input file: {path}\n{e}") from e


def _read_document(path: str, input_type: InputType) -> Any:
    """Parse a JSON or YAML document."""
    text = _read_text(path)
    try:
        if input_type == InputType.JSON:
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise InputResolutionError(f"Invalid {input_type.value.upper()} input: {path}\n{e}") from e


def load_table_metadata(path: str, dialect: str = 'postgres') -> List[TableMetadata]:
    """Load table metadata from a JSON/YAML document or a DDL file.

    Documents may hold a single table object, a list of tables, or an object
    with a ``tables`` list.

    Raises:
        InputResolutionError: If the file is missing, unreadable or empty
        ValidationError: If a table payload has an invalid shape
    """
    input_type = resolve_input_type(path)

    if input_type == InputType.SQL:
        tables = parse_ddl_to_metadata(_read_text(path), dialect=dialect)
        if not tables:
            raise InputResolutionError(f"No CREATE TABLE statements could be parsed from: {path}")
        logger.debug("Parsed %d table(s) from %s", len(tables), path)
        return tables

    document = _read_document(path, input_type)
    if isinstance(document, dict) and 'tables' in document:
        document = document['tables']
    if isinstance(document, dict):
        document = [document]
    if not isinstance(document, list) or not document:
        raise InputResolutionError(f"Input contains no table metadata: {path}")

    tables = [TableMetadata.model_validate(item) for item in document]
    logger.debug("Loaded %d table(s) from %s", len(tables), path)
    return tables


def load_snapshot(path: str, dialect: str = 'postgres') -> EnvironmentSnapshot:
    """Load an environment snapshot.

    A DDL file becomes a snapshot named after the file with every capability
    available and no migration history.

    Raises:
        InputResolutionError: If the file is missing, unreadable or malformed
        ValidationError: If the snapshot payload has an invalid shape
    """
    input_type = resolve_input_type(path)
    default_name = Path(path).stem

    if input_type == InputType.SQL:
        tables = load_table_metadata(path, dialect=dialect)
        return EnvironmentSnapshot(
            environment_name=default_name,
            schema_name=tables[0].schema_name,
            tables=tables
        )

    document = _read_document(path, input_type)
    if not isinstance(document, dict):
        raise InputResolutionError(f"Snapshot must be an object: {path}")

    document = dict(document)
    document.setdefault('environment_name', default_name)
    snapshot = EnvironmentSnapshot.model_validate(document)
    logger.debug("Loaded snapshot %s with %d table(s)",
                 snapshot.environment_name, len(snapshot.tables))
    return snapshot
