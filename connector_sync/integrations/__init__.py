from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.credentials import TokenCipher, TokenLifecycleManager
from connector_sync.integrations.core.exceptions import (
    ApiRequestError,
    AuthError,
    ConcurrencyError,
    ConnectionNotFoundError,
    IntegrationException,
    ItemUpsertError,
    NotFoundError,
    ProviderNotFoundError,
    TransientApiError,
)
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import (
    AuthContext,
    IncidentItem,
    IssueItem,
    MessageItem,
    NormalizedItem,
    WebhookEvent,
)

__all__ = [
    "ApiClient",
    "ApiRequestError",
    "AuthContext",
    "AuthError",
    "ConcurrencyError",
    "ConnectionNotFoundError",
    "IConnectorProvider",
    "IncidentItem",
    "IntegrationException",
    "IssueItem",
    "ItemUpsertError",
    "MessageItem",
    "NormalizedItem",
    "NotFoundError",
    "ProviderNotFoundError",
    "TokenCipher",
    "TokenLifecycleManager",
    "TransientApiError",
    "WebhookEvent",
]
