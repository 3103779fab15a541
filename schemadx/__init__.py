"""schemadx - schema diagnostic reasoning engine."""

__version__ = "0.1.0"
