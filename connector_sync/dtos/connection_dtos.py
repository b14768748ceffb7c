from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from connector_sync.models.connection import SyncSettings


class CreateConnectionDTO(BaseModel):
    tenant_id: int
    provider_slug: str
    name: str | None = None
    access_token_encrypted: str
    refresh_token_encrypted: str | None = None
    token_expires_at: datetime | None = None
    scope: str | None = None
    workspace_id: str | None = None
    oauth_metadata: dict[str, Any] = Field(default_factory=dict)
    sync_settings: SyncSettings = Field(default_factory=SyncSettings)


class UpdateTokensDTO(BaseModel):
    access_token_encrypted: str
    refresh_token_encrypted: str | None = None
    token_expires_at: datetime | None = None
    scope: str | None = None


class ReauthorizeConnectionDTO(UpdateTokensDTO):
    name: str | None = None
    oauth_metadata: dict[str, Any] = Field(default_factory=dict)
