from connector_sync.constants.enums import (
    ConnectionStatus,
    EntityType,
    SyncRunKind,
    SyncRunStatus,
    UpsertOutcome,
    WebhookAction,
    WebhookResultStatus,
)

__all__ = [
    "ConnectionStatus",
    "EntityType",
    "SyncRunKind",
    "SyncRunStatus",
    "UpsertOutcome",
    "WebhookAction",
    "WebhookResultStatus",
]
