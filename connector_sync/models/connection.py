from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from connector_sync.constants.enums import ConnectionStatus


class SyncSettings(BaseModel):
    sync_interval_minutes: int | None = Field(default=None, ge=1)
    auto_sync: bool = True
    parent_filter: list[str] = Field(default_factory=list)
    item_type_filter: list[str] = Field(default_factory=list)
    status_filter: list[str] = Field(default_factory=list)
    sync_comments: bool = True
    sync_attachments: bool = True


class Connection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    provider_slug: str
    name: str | None = None
    status: ConnectionStatus = ConnectionStatus.ACTIVE
    is_active: bool = True

    access_token_encrypted: str | None = None
    refresh_token_encrypted: str | None = None
    token_expires_at: datetime | None = None
    scope: str | None = None
    workspace_id: str | None = None
    oauth_metadata: dict[str, Any] = Field(default_factory=dict)

    sync_settings: SyncSettings = Field(default_factory=SyncSettings)

    last_sync_at: datetime | None = None
    last_successful_sync_at: datetime | None = None
    last_sync_error: str | None = None
    failed_sync_attempts: int = 0
    total_items_synced: int = 0

    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @property
    def last_sync_reference(self) -> datetime | None:
        return self.last_successful_sync_at or self.last_sync_at
