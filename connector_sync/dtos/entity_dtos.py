from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from connector_sync.constants.enums import EntityType


class UpsertParentUnitDTO(BaseModel):
    tenant_id: int
    connection_id: int
    external_id: str
    key: str
    name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpsertRemoteEntityDTO(BaseModel):
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
    synced_at: datetime
