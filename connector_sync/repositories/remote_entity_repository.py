import json

import asyncpg

from connector_sync.database.query_builder import bind_named, load_json_columns
from connector_sync.dtos.entity_dtos import UpsertRemoteEntityDTO
from connector_sync.models.remote_entity import RemoteEntity

_JSON_COLUMNS = ("fields", "comments", "attachments", "history", "raw_data")


class RemoteEntityRepository:

    _SELECT_FIELDS = """
        id, tenant_id, connection_id, parent_unit_id, provider_slug, entity_type,
        external_id, external_key, title, status, item_type,
        remote_created_at, remote_updated_at,
        fields, comments, attachments, history, raw_data,
        last_synced_at, is_deleted, deleted_at, created_at, updated_at
    """

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def upsert(self, dto: UpsertRemoteEntityDTO) -> tuple[RemoteEntity, bool]:
        """Insert or update by (tenant_id, connection_id, external_id).

        Returns the stored row and whether it was newly inserted.
        """
        query = f"""
            INSERT INTO remote_entity (
                tenant_id, connection_id, parent_unit_id, provider_slug, entity_type,
                external_id, external_key, title, status, item_type,
                remote_created_at, remote_updated_at,
                fields, comments, attachments, history, raw_data, last_synced_at
            ) VALUES (
                :tenant_id, :connection_id, :parent_unit_id, :provider_slug, :entity_type,
                :external_id, :external_key, :title, :status, :item_type,
                :remote_created_at, :remote_updated_at,
                :fields, :comments, :attachments, :history, :raw_data, :synced_at
            )
            ON CONFLICT (tenant_id, connection_id, external_id) DO UPDATE SET
                parent_unit_id = EXCLUDED.parent_unit_id,
                entity_type = EXCLUDED.entity_type,
                external_key = EXCLUDED.external_key,
                title = EXCLUDED.title,
                status = EXCLUDED.status,
                item_type = EXCLUDED.item_type,
                remote_created_at = EXCLUDED.remote_created_at,
                remote_updated_at = EXCLUDED.remote_updated_at,
                fields = EXCLUDED.fields,
                comments = EXCLUDED.comments,
                attachments = EXCLUDED.attachments,
                history = EXCLUDED.history,
                raw_data = EXCLUDED.raw_data,
                last_synced_at = EXCLUDED.last_synced_at,
                is_deleted = FALSE,
                deleted_at = NULL,
                updated_at = NOW()
            RETURNING {self._SELECT_FIELDS}, (xmax = 0) AS inserted
        """
        params = {
            "tenant_id": dto.tenant_id,
            "connection_id": dto.connection_id,
            "parent_unit_id": dto.parent_unit_id,
            "provider_slug": dto.provider_slug,
            "entity_type": dto.entity_type.value,
            "external_id": dto.external_id,
            "external_key": dto.external_key,
            "title": dto.title,
            "status": dto.status,
            "item_type": dto.item_type,
            "remote_created_at": dto.remote_created_at,
            "remote_updated_at": dto.remote_updated_at,
            "synced_at": dto.synced_at,
        }
        for column in _JSON_COLUMNS:
            value = getattr(dto, column)
            params[column] = json.dumps(value) if value is not None else None

        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        inserted = bool(row["inserted"])
        return self._map_to_model(row), inserted

    async def find_by_external_id(
        self, tenant_id: int, connection_id: int, external_id: str
    ) -> RemoteEntity | None:
        """Live entity by vendor id or human key (e.g. PROJ-12)."""
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM remote_entity
            WHERE tenant_id = $1
              AND connection_id = $2
              AND (external_id = $3 OR external_key = $3)
              AND is_deleted = FALSE
            ORDER BY (external_id = $3) DESC
            LIMIT 1
        """
        row = await self._conn.fetchrow(query, tenant_id, connection_id, external_id)
        return self._map_to_model(row)

    async def soft_delete(
        self, tenant_id: int, connection_id: int, external_id: str
    ) -> bool:
        query = """
            UPDATE remote_entity
            SET is_deleted = TRUE, deleted_at = NOW(), updated_at = NOW()
            WHERE tenant_id = $1
              AND connection_id = $2
              AND (external_id = $3 OR external_key = $3)
              AND is_deleted = FALSE
        """
        result = await self._conn.execute(query, tenant_id, connection_id, external_id)
        return result != "UPDATE 0"

    def _map_to_model(self, row: asyncpg.Record | None) -> RemoteEntity | None:
        if row is None:
            return None
        data = load_json_columns(dict(row), *_JSON_COLUMNS)
        data.pop("inserted", None)
        data["fields"] = data.get("fields") or {}
        data["raw_data"] = data.get("raw_data") or {}
        return RemoteEntity.model_validate(data)
