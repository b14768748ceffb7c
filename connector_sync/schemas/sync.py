from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from connector_sync.constants.enums import SyncRunKind, SyncRunStatus


class SyncTriggerRequest(BaseModel):
    force_full: bool = False
    parent_keys: list[str] | None = Field(
        None, description="Restrict the run to these projects, channels or tables"
    )


class SyncRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    connection_id: int
    kind: SyncRunKind
    status: SyncRunStatus
    started_at: datetime
    completed_at: datetime | None
    parent_units_processed: int
    items_created: int
    items_updated: int
    items_failed: int
    total_processed: int
    api_calls_count: int
    duration_seconds: float | None
    stats_json: dict[str, Any]
    error_message: str | None


class SyncHistoryResponse(BaseModel):
    runs: list[SyncRunResponse]


class SyncStatusResponse(BaseModel):
    connection_id: int
    in_progress: bool
    last_sync_at: datetime | None
    last_successful_sync_at: datetime | None
    last_sync_error: str | None
    failed_sync_attempts: int
    total_items_synced: int
    latest_run: SyncRunResponse | None = None
    current_run: SyncRunResponse | None = None


class WebhookAckResponse(BaseModel):
    received: int
    results: list[dict[str, Any]]
