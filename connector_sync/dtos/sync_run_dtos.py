from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from connector_sync.constants.enums import SyncRunKind, SyncRunStatus


class CreateSyncRunDTO(BaseModel):
    tenant_id: int
    connection_id: int
    kind: SyncRunKind
    status: SyncRunStatus = SyncRunStatus.IN_PROGRESS
    started_at: datetime
    stats_json: dict[str, Any] = Field(default_factory=dict)


class FinalizeSyncRunDTO(BaseModel):
    status: SyncRunStatus
    completed_at: datetime
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
