import json
from datetime import datetime

import asyncpg

from connector_sync.constants.enums import ConnectionStatus
from connector_sync.database.query_builder import bind_named, load_json_columns
from connector_sync.dtos.connection_dtos import (
    CreateConnectionDTO,
    ReauthorizeConnectionDTO,
    UpdateTokensDTO,
)
from connector_sync.models.connection import Connection, SyncSettings


class ConnectionRepository:

    _SELECT_FIELDS = """
        id, tenant_id, provider_slug, name, status, is_active,
        access_token_encrypted, refresh_token_encrypted, token_expires_at,
        scope, workspace_id, oauth_metadata, sync_settings,
        last_sync_at, last_successful_sync_at, last_sync_error,
        failed_sync_attempts, total_items_synced,
        created_at, updated_at, deleted_at
    """

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def find_by_id(self, connection_id: int) -> Connection | None:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_connection
            WHERE id = :connection_id AND deleted_at IS NULL
        """
        query, values = bind_named(query, {"connection_id": connection_id})
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def find_by_id_for_tenant(
        self, connection_id: int, tenant_id: int
    ) -> Connection | None:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_connection
            WHERE id = :connection_id
              AND tenant_id = :tenant_id
              AND deleted_at IS NULL
        """
        query, values = bind_named(
            query, {"connection_id": connection_id, "tenant_id": tenant_id}
        )
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def find_by_tenant(self, tenant_id: int) -> list[Connection]:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_connection
            WHERE tenant_id = :tenant_id AND deleted_at IS NULL
            ORDER BY created_at DESC
        """
        query, values = bind_named(query, {"tenant_id": tenant_id})
        rows = await self._conn.fetch(query, *values)
        return [self._map_to_model(row) for row in rows]

    async def find_by_workspace(
        self, tenant_id: int, provider_slug: str, workspace_id: str | None
    ) -> Connection | None:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_connection
            WHERE tenant_id = :tenant_id
              AND provider_slug = :provider_slug
              AND workspace_id IS NOT DISTINCT FROM :workspace_id
              AND deleted_at IS NULL
        """
        query, values = bind_named(
            query,
            {
                "tenant_id": tenant_id,
                "provider_slug": provider_slug,
                "workspace_id": workspace_id,
            },
        )
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def find_active_connections(self) -> list[Connection]:
        query = f"""
            SELECT {self._SELECT_FIELDS}
            FROM connector_connection
            WHERE is_active = TRUE AND deleted_at IS NULL
            ORDER BY id
        """
        rows = await self._conn.fetch(query)
        return [self._map_to_model(row) for row in rows]

    async def create(self, dto: CreateConnectionDTO) -> Connection:
        query = f"""
            INSERT INTO connector_connection (
                tenant_id, provider_slug, name, status, is_active,
                access_token_encrypted, refresh_token_encrypted, token_expires_at,
                scope, workspace_id, oauth_metadata, sync_settings
            ) VALUES (
                :tenant_id, :provider_slug, :name, :status, TRUE,
                :access_token_encrypted, :refresh_token_encrypted, :token_expires_at,
                :scope, :workspace_id, :oauth_metadata, :sync_settings
            )
            RETURNING {self._SELECT_FIELDS}
        """
        params = {
            "tenant_id": dto.tenant_id,
            "provider_slug": dto.provider_slug,
            "name": dto.name,
            "status": ConnectionStatus.ACTIVE.value,
            "access_token_encrypted": dto.access_token_encrypted,
            "refresh_token_encrypted": dto.refresh_token_encrypted,
            "token_expires_at": dto.token_expires_at,
            "scope": dto.scope,
            "workspace_id": dto.workspace_id,
            "oauth_metadata": json.dumps(dto.oauth_metadata),
            "sync_settings": dto.sync_settings.model_dump_json(),
        }
        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def reauthorize(
        self, connection_id: int, dto: ReauthorizeConnectionDTO
    ) -> Connection | None:
        query = f"""
            UPDATE connector_connection
            SET access_token_encrypted = :access_token_encrypted,
                refresh_token_encrypted = COALESCE(:refresh_token_encrypted, refresh_token_encrypted),
                token_expires_at = :token_expires_at,
                scope = :scope,
                name = COALESCE(:name, name),
                oauth_metadata = :oauth_metadata,
                status = :status,
                is_active = TRUE,
                last_sync_error = NULL,
                updated_at = NOW()
            WHERE id = :connection_id AND deleted_at IS NULL
            RETURNING {self._SELECT_FIELDS}
        """
        params = {
            "connection_id": connection_id,
            "access_token_encrypted": dto.access_token_encrypted,
            "refresh_token_encrypted": dto.refresh_token_encrypted,
            "token_expires_at": dto.token_expires_at,
            "scope": dto.scope,
            "name": dto.name,
            "oauth_metadata": json.dumps(dto.oauth_metadata),
            "status": ConnectionStatus.ACTIVE.value,
        }
        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def update_tokens(
        self, connection_id: int, dto: UpdateTokensDTO
    ) -> Connection | None:
        query = f"""
            UPDATE connector_connection
            SET access_token_encrypted = :access_token_encrypted,
                refresh_token_encrypted = :refresh_token_encrypted,
                token_expires_at = :token_expires_at,
                scope = COALESCE(:scope, scope),
                updated_at = NOW()
            WHERE id = :connection_id
            RETURNING {self._SELECT_FIELDS}
        """
        params = {"connection_id": connection_id, **dto.model_dump()}
        query, values = bind_named(query, params)
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def update_sync_settings(
        self, connection_id: int, sync_settings: SyncSettings
    ) -> Connection | None:
        query = f"""
            UPDATE connector_connection
            SET sync_settings = :sync_settings, updated_at = NOW()
            WHERE id = :connection_id AND deleted_at IS NULL
            RETURNING {self._SELECT_FIELDS}
        """
        query, values = bind_named(
            query,
            {
                "connection_id": connection_id,
                "sync_settings": sync_settings.model_dump_json(),
            },
        )
        row = await self._conn.fetchrow(query, *values)
        return self._map_to_model(row)

    async def mark_sync_started(self, connection_id: int, started_at: datetime) -> None:
        query = """
            UPDATE connector_connection
            SET last_sync_at = $1, updated_at = NOW()
            WHERE id = $2
        """
        await self._conn.execute(query, started_at, connection_id)

    async def mark_sync_succeeded(
        self, connection_id: int, completed_at: datetime, items_synced: int
    ) -> None:
        query = """
            UPDATE connector_connection
            SET last_successful_sync_at = GREATEST(
                    COALESCE(last_successful_sync_at, $1), $1
                ),
                failed_sync_attempts = 0,
                last_sync_error = NULL,
                total_items_synced = total_items_synced + $2,
                status = 'active',
                updated_at = NOW()
            WHERE id = $3
        """
        await self._conn.execute(query, completed_at, items_synced, connection_id)

    async def mark_sync_failed(self, connection_id: int, error: str) -> None:
        query = """
            UPDATE connector_connection
            SET failed_sync_attempts = failed_sync_attempts + 1,
                last_sync_error = $1,
                updated_at = NOW()
            WHERE id = $2
        """
        await self._conn.execute(query, error, connection_id)

    async def revoke(self, connection_id: int) -> bool:
        query = """
            UPDATE connector_connection
            SET is_active = FALSE,
                status = 'revoked',
                deleted_at = NOW(),
                updated_at = NOW()
            WHERE id = $1 AND deleted_at IS NULL
        """
        result = await self._conn.execute(query, connection_id)
        return result == "UPDATE 1"

    def _map_to_model(self, row: asyncpg.Record | None) -> Connection | None:
        if row is None:
            return None
        data = load_json_columns(dict(row), "oauth_metadata", "sync_settings")
        data["oauth_metadata"] = data.get("oauth_metadata") or {}
        data["sync_settings"] = data.get("sync_settings") or {}
        return Connection.model_validate(data)
