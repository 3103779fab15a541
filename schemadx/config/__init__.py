"""Configuration management."""
from schemadx.config.settings import (
    ConfigError,
    EngineConfig,
    RiskVocabulary,
    load_engine_config,
)

__all__ = [
    'ConfigError',
    'EngineConfig',
    'RiskVocabulary',
    'load_engine_config',
]
