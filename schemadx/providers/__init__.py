"""Metadata provider registry and factory."""
import logging
from typing import Any, Dict, List, Type

from schemadx.providers.base import MetadataProvider
from schemadx.providers.snapshot import SnapshotProvider

logger = logging.getLogger(__name__)


class UnsupportedProviderError(ValueError):
    """Raised when an unsupported provider type is requested."""


# Registry of metadata providers
# Format: provider type -> provider class
PROVIDERS: Dict[str, Type[MetadataProvider]] = {
    'snapshot': SnapshotProvider,
}


def get_provider(provider_type: str, **kwargs: Any) -> MetadataProvider:
    """Get a metadata provider instance by type.

    Args:
        provider_type: Type of provider (snapshot)
        **kwargs: Passed to the provider constructor

    Returns:
        MetadataProvider instance

    Raises:
        UnsupportedProviderError: If provider type is not recognized
    """
    provider_type_lower = provider_type.lower()

    if provider_type_lower not in PROVIDERS:
        raise UnsupportedProviderError(
            f"Unsupported provider: '{provider_type}'. "
            f"Supported types: {', '.join(list_supported_providers())}"
        )

    logger.debug("Creating provider of type: %s", provider_type_lower)
    return PROVIDERS[provider_type_lower](**kwargs)


def list_supported_providers() -> List[str]:
    """Registered provider types."""
    return list(PROVIDERS)


__all__ = [
    'MetadataProvider',
    'SnapshotProvider',
    'UnsupportedProviderError',
    'get_provider',
    'list_supported_providers',
]
