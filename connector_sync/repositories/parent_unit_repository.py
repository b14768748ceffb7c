import json
from datetime import datetime

import asyncpg

from connector_sync.database.query_builder import bind_named, load_json_columns
from connector_sync.dtos.entity_dtos import UpsertParentUnitDTO
from connector_sync.models.parent_unit import ParentUnit


class ParentUnitRepository:

    _SELECT_FIELDS = """
        pu.id, pu.tenant_id, pu.connection_id, pu.external_id, pu.key, pu.name,
        pu.metadata, pu.is_active, pu.total_items, pu.last_synced_at,
        pu.created_at, pu.updated_at
    """

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def upsert(self, dto: UpsertParentUnitDTO) -> ParentUnit:
        query = f"""
            INSERT INTO connector_parent_unit AS pu (
                tenant_id, connection_id, external_id, key, name, metadata
            ) VALUES (
                :tenant_id, :connection_id, :external_id, :key, :name, :metadata
            )
            ON CONFLICT (connection_id, external_id) DO UPDATE SET
                key = EXCLUDED.key,
                name = EXCLUDED.name,
                metadata = EXCLUDED.metadata,
                is_active = TRUE,
                updated_at = NOW()
            RETURNING {self._SELECT_FIELDS}
        """
        params = {
            "tenant_id": dto.tenant_id,
            "connection_id": dto.connection_id,
            "external_id": dto.external_id,
            "key": dto.key,
            "name": dto.name,
            "metadata": json.dumps(dto.metadata),
        }
        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def find_by_connection(self, connection_id: int) -> list[ParentUnit]:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_parent_unit pu
            WHERE pu.connection_id = $1 AND pu.is_active = TRUE
            ORDER BY pu.key
        """
        rows = await self._conn.fetch(query, connection_id)
        return [self._map_to_model(row) for row in rows]

    async def find_by_key(
        self, provider_slug: str, key: str, connection_id: int | None = None
    ) -> list[ParentUnit]:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_parent_unit pu
            JOIN connector_connection c ON c.id = pu.connection_id
            WHERE c.provider_slug = :provider_slug
              AND c.is_active = TRUE
              AND c.deleted_at IS NULL
              AND pu.is_active = TRUE
              AND (pu.key = :key OR pu.external_id = :key)
              AND (CAST(:connection_id AS BIGINT) IS NULL OR pu.connection_id = :connection_id)
        """
        query, values = bind_named(
            query,
            {"provider_slug": provider_slug, "key": key, "connection_id": connection_id},
        )
        rows = await self._conn.fetch(query, *values)
        return [self._map_to_model(row) for row in rows]

    async def mark_synced(self, unit_id: int, synced_at: datetime) -> None:
        query = """
            UPDATE connector_parent_unit
            SET last_synced_at = $1,
                total_items = (
                    SELECT COUNT(*) FROM remote_entity
                    WHERE parent_unit_id = $2 AND is_deleted = FALSE
                ),
                updated_at = NOW()
            WHERE id = $2
        """
        await self._conn.execute(query, synced_at, unit_id)

    def _map_to_model(self, row: asyncpg.Record | None) -> ParentUnit | None:
        if row is None:
            return None
        data = load_json_columns(dict(row), "metadata")
        data["metadata"] = data.get("metadata") or {}
        return ParentUnit.model_validate(data)
