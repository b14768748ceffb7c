from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from connector_sync.constants.enums import SyncRunKind, SyncRunStatus


class SyncRun(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    connection_id: int

    kind: SyncRunKind
    status: SyncRunStatus

    started_at: datetime
    completed_at: datetime | None = None

    parent_units_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_failed: int = 0
    total_processed: int = 0
    api_calls_count: int = 0
    duration_seconds: float | None = None

    stats_json: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
