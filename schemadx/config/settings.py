"""Engine configuration management."""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from schemadx.models.finding import AccessProfile

logger = logging.getLogger(__name__)

DEFAULT_ROOT_ENTITIES = ['cart', 'order', 'user', 'account', 'customer']
DEFAULT_MAX_MATCH_ITEMS = 100
ENV_PREFIX = 'SCHEMADX'


class ConfigError(ValueError):
    """Raised when engine configuration loading fails."""


class RiskVocabulary(BaseModel):
    """Domain vocabulary used by the foreign key and impact heuristics.

    The root entities name tables whose deletion typically fans out to many
    dependents. The parent token of a table is its name up to the first
    delimiter (``cart_item`` -> ``cart``).
    """

    model_config = ConfigDict(frozen=True)

    root_entities: List[str] = Field(default_factory=lambda: list(DEFAULT_ROOT_ENTITIES))
    parent_token_delimiter: str = Field(default='_', min_length=1)

    def parent_token(self, table: str) -> str:
        """Leading token of a table name."""
        return table.split(self.parent_token_delimiter)[0]


class EngineConfig(BaseModel):
    """Caller-owned configuration passed into the engine."""

    model_config = ConfigDict(frozen=True)

    vocabulary: RiskVocabulary = Field(default_factory=RiskVocabulary)
    expected_profile: AccessProfile = AccessProfile.READ_WRITE
    max_match_items: int = Field(default=DEFAULT_MAX_MATCH_ITEMS, gt=0)


def load_engine_config(config_file: Optional[str] = None) -> EngineConfig:
    """Load engine configuration.

    Loads configuration with the following priority:
    1. Explicit --config path (highest priority)
    2. ~/.schemadx/config.yaml
    3. SCHEMADX_* environment variables
    4. Defaults

    Args:
        config_file: Optional explicit configuration file path

    Returns:
        Validated EngineConfig

    Raises:
        ConfigError: If the configuration file or values are invalid
    """
    if config_file:
        config = _build_config(_load_yaml_config(config_file), config_file)
        logger.info("Loaded engine config from: %s", config_file)
        return config

    default_path = Path.home() / '.schemadx' / 'config.yaml'
    if default_path.exists():
        config = _build_config(_load_yaml_config(str(default_path)), str(default_path))
        logger.info("Loaded engine config from: %s", default_path)
        return config

    env_config = _load_from_env()
    if env_config:
        logger.info("Loaded engine config from environment variables")
        return _build_config(env_config, "environment")

    logger.debug("No engine config found. Using defaults.")
    return EngineConfig()


def _load_yaml_config(file_path: str) -> Dict[str, Any]:
    """Load a YAML configuration file.

    Raises:
        ConfigError: If file is invalid or missing
    """
    try:
        if not os.path.exists(file_path):
            raise ConfigError(f"Configuration file not found: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        if config is None:
            return {}

        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration file must contain a YAML dictionary: {file_path}"
            )

        return config

    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML configuration: {file_path}\n{e}"
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Error reading configuration file: {file_path}\n{e}"
        ) from e


def _load_from_env() -> Optional[Dict[str, Any]]:
    """Load configuration from SCHEMADX_* environment variables.

    Returns:
        Configuration dictionary or None if no env vars found
    """
    config: Dict[str, Any] = {}
    vocabulary: Dict[str, Any] = {}

    profile = os.getenv(f"{ENV_PREFIX}_EXPECTED_PROFILE")
    if profile:
        config['expected_profile'] = profile.strip()

    max_items = os.getenv(f"{ENV_PREFIX}_MAX_MATCH_ITEMS")
    if max_items:
        config['max_match_items'] = max_items.strip()

    entities = os.getenv(f"{ENV_PREFIX}_ROOT_ENTITIES")
    if entities:
        vocabulary['root_entities'] = [e.strip() for e in entities.split(',') if e.strip()]

    delimiter = os.getenv(f"{ENV_PREFIX}_PARENT_TOKEN_DELIMITER")
    if delimiter:
        vocabulary['parent_token_delimiter'] = delimiter

    if vocabulary:
        config['vocabulary'] = vocabulary

    return config if config else None


def _build_config(raw: Dict[str, Any], source: str) -> EngineConfig:
    """Validate raw configuration values.

    Raises:
        ConfigError: If a value is out of range or of the wrong type
    """
    try:
        return EngineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid engine configuration in {source}:\n{e}") from e
