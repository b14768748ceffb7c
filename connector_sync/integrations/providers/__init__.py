from connector_sync.integrations.providers.factory import (
    get_provider_by_slug,
    require_provider,
    supported_provider_slugs,
)

__all__ = [
    "get_provider_by_slug",
    "require_provider",
    "supported_provider_slugs",
]
