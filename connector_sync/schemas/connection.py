from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from connector_sync.constants.enums import ConnectionStatus
from connector_sync.models.connection import SyncSettings


class AuthorizeRequest(BaseModel):
    redirect_uri: str | None = Field(
        None,
        description="Where the vendor sends the user back (defaults to the backend callback)",
    )
    workspace_hint: str | None = Field(
        None,
        description="Vendor site or instance URL to pre-select (required for ServiceNow)",
    )


class AuthorizeResponse(BaseModel):
    provider_slug: str
    authorization_url: str


class ConnectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    provider_slug: str
    name: str | None
    status: ConnectionStatus
    is_active: bool
    workspace_id: str | None
    scope: str | None
    oauth_metadata: dict[str, Any]
    sync_settings: SyncSettings
    last_sync_at: datetime | None
    last_successful_sync_at: datetime | None
    last_sync_error: str | None
    failed_sync_attempts: int
    total_items_synced: int
    created_at: datetime
    updated_at: datetime


class ConnectionListResponse(BaseModel):
    connections: list[ConnectionResponse]


class RevokeResponse(BaseModel):
    success: bool
    message: str
