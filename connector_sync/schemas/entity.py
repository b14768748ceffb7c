from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from connector_sync.constants.enums import EntityType


class RemoteEntityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    connection_id: int
    provider_slug: str
    entity_type: EntityType
    external_id: str
    external_key: str | None
    title: str | None
    status: str | None
    item_type: str | None
    remote_created_at: datetime | None
    remote_updated_at: datetime | None
    fields: dict[str, Any]
    comments: list[dict[str, Any]] | None
    attachments: list[dict[str, Any]] | None
    history: list[dict[str, Any]] | None
    last_synced_at: datetime
