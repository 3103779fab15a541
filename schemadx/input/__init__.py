"""Input file handling and resolution."""
from schemadx.input.loader import (
    InputResolutionError,
    InputType,
    load_snapshot,
    load_table_metadata,
    resolve_input_type,
)

__all__ = [
    'InputType',
    'InputResolutionError',
    'load_snapshot',
    'load_table_metadata',
    'resolve_input_type',
]
