from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from connector_sync.constants.enums import EntityType


class RemoteEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    connection_id: int
    parent_unit_id: int | None = None
    provider_slug: str
    entity_type: EntityType

    external_id: str
    external_key: str | None = None
    title: str | None = None
    status: str | None = None
    item_type: str | None = None
    remote_created_at: datetime | None = None
    remote_updated_at: datetime | None = None

    fields: dict[str, Any] = Field(default_factory=dict)
    comments: list[dict[str, Any]] | None = None
    attachments: list[dict[str, Any]] | None = None
    history: list[dict[str, Any]] | None = None
    raw_data: dict[str, Any] = Field(default_factory=dict)

    last_synced_at: datetime
    is_deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
