import json

import asyncpg

from connector_sync.database.query_builder import bind_named, load_json_columns
from connector_sync.dtos.sync_run_dtos import CreateSyncRunDTO, FinalizeSyncRunDTO
from connector_sync.models.sync_run import SyncRun


class SyncRunRepository:

    _SELECT_FIELDS = """
        id, tenant_id, connection_id, kind, status, started_at, completed_at,
        parent_units_processed, items_created, items_updated, items_failed,
        total_processed, api_calls_count, duration_seconds,
        stats_json, error_message, error_details
    """

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def create(self, dto: CreateSyncRunDTO) -> SyncRun:
        query = f"""
            INSERT INTO sync_run (
                tenant_id, connection_id, kind, status, started_at, stats_json
            ) VALUES (
                :tenant_id, :connection_id, :kind, :status, :started_at, :stats_json
            )
            RETURNING {self._SELECT_FIELDS}
        """
        params = {
            "tenant_id": dto.tenant_id,
            "connection_id": dto.connection_id,
            "kind": dto.kind.value,
            "status": dto.status.value,
            "started_at": dto.started_at,
            "stats_json": json.dumps(dto.stats_json),
        }
        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def finalize(self, run_id: int, dto: FinalizeSyncRunDTO) -> SyncRun | None:
        query = f"""
            UPDATE sync_run
            SET status = :status,
                completed_at = :completed_at,
                parent_units_processed = :parent_units_processed,
                items_created = :items_created,
                items_updated = :items_updated,
                items_failed = :items_failed,
                total_processed = :total_processed,
                api_calls_count = :api_calls_count,
                duration_seconds = :duration_seconds,
                stats_json = :stats_json,
                error_message = :error_message,
                error_details = :error_details
            WHERE id = :run_id AND status = 'in_progress'
            RETURNING {self._SELECT_FIELDS}
        """
        params = {
            **dto.model_dump(exclude={"status", "stats_json", "error_details"}),
            "run_id": run_id,
            "status": dto.status.value,
            "stats_json": json.dumps(dto.stats_json),
            "error_details": (
                json.dumps(dto.error_details) if dto.error_details is not None else None
            ),
        }
        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def find_by_connection(
        self, connection_id: int, tenant_id: int, limit: int = 10
    ) -> list[SyncRun]:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM sync_run
            WHERE connection_id = :connection_id AND tenant_id = :tenant_id
            ORDER BY started_at DESC
            LIMIT :limit
        """
        query, values = bind_named(
            query,
            {"connection_id": connection_id, "tenant_id": tenant_id, "limit": limit},
        )
        rows = await self._conn.fetch(query, *values)
        return [self._map_to_model(row) for row in rows]

    async def find_in_progress(self, connection_id: int) -> SyncRun | None:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM sync_run
            WHERE connection_id = $1 AND status = 'in_progress'
            ORDER BY started_at DESC
            LIMIT 1
        """
        row = await self._conn.fetchrow(query, connection_id)
        return self._map_to_model(row)

    async def cancel_abandoned_runs(self, reason: str) -> int:
        query = """
            UPDATE sync_run
            SET status = 'cancelled',
                completed_at = NOW(),
                error_message = $1
            WHERE status = 'in_progress'
        """
        result = await self._conn.execute(query, reason)
        return int(result.split()[-1])

    def _map_to_model(self, row: asyncpg.Record | None) -> SyncRun | None:
        if row is None:
            return None
        data = load_json_columns(dict(row), "stats_json", "error_details")
        data["stats_json"] = data.get("stats_json") or {}
        return SyncRun.model_validate(data)
