from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ParentUnit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    connection_id: int
    external_id: str
    key: str
    name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    total_items: int = 0
    last_synced_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
