from enum import Enum


class ConnectionStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"
    REVOKED = "revoked"


class SyncRunKind(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    WEBHOOK = "webhook"


class SyncRunStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EntityType(str, Enum):
    ISSUE = "issue"
    MESSAGE = "message"
    INCIDENT = "incident"


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


class WebhookAction(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class WebhookResultStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    DELETED = "deleted"
    DROPPED = "dropped"
    FAILED = "failed"
