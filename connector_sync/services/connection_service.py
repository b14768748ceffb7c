import logging
from collections.abc import Callable

from connector_sync.dtos.connection_dtos import (
    CreateConnectionDTO,
    ReauthorizeConnectionDTO,
)
from connector_sync.integrations.core.credentials import (
    TokenCipher,
    TokenLifecycleManager,
    compute_expires_at,
)
from connector_sync.integrations.core.exceptions import (
    ConnectionNotFoundError,
    InvalidOAuthStateError,
    RemoteEntityNotFoundError,
)
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import AuthContext, TokenResponse
from connector_sync.models.connection import Connection, SyncSettings
from connector_sync.models.remote_entity import RemoteEntity
from connector_sync.models.sync_run import SyncRun
from connector_sync.repositories.connection_repository import ConnectionRepository
from connector_sync.repositories.remote_entity_repository import RemoteEntityRepository
from connector_sync.repositories.sync_run_repository import SyncRunRepository
from connector_sync.utils.oauth_state import decode_oauth_state, encode_oauth_state

logger = logging.getLogger(__name__)


class ConnectionService:
    def __init__(
        self,
        connection_repository: ConnectionRepository,
        sync_run_repository: SyncRunRepository,
        entity_repository: RemoteEntityRepository,
        cipher: TokenCipher,
        token_manager: TokenLifecycleManager,
        provider_resolver: Callable[[str], IConnectorProvider],
    ):
        self._connection_repo = connection_repository
        self._run_repo = sync_run_repository
        self._entity_repo = entity_repository
        self._cipher = cipher
        self._token_manager = token_manager
        self._provider_resolver = provider_resolver

    def get_authorization_url(
        self,
        provider_slug: str,
        tenant_id: int,
        redirect_uri: str,
        workspace_hint: str | None = None,
    ) -> str:
        provider = self._provider_resolver(provider_slug)
        state = encode_oauth_state(tenant_id, provider_slug, workspace_hint)
        logger.info(f"Building authorization URL for {provider_slug}, tenant {tenant_id}")
        return provider.get_authorization_url(state, redirect_uri, workspace_hint)

    async def complete_oauth_flow(
        self,
        provider_slug: str,
        code: str,
        state: str,
        redirect_uri: str,
        name: str | None = None,
    ) -> Connection:
        state_data = decode_oauth_state(state)
        tenant_id = state_data.get("tenant_id")
        if not isinstance(tenant_id, int) or state_data.get("provider_slug") != provider_slug:
            logger.warning(f"Rejected OAuth callback for {provider_slug}: bad state")
            raise InvalidOAuthStateError()

        workspace_hint = state_data.get("workspace_hint")
        provider = self._provider_resolver(provider_slug)

        tokens = await provider.exchange_code_for_tokens(code, redirect_uri, workspace_hint)
        workspace = await provider.resolve_workspace(
            AuthContext(access_token=tokens.access_token, token_type=tokens.token_type),
            workspace_hint,
        )

        existing = await self._connection_repo.find_by_workspace(
            tenant_id, provider_slug, workspace.workspace_id
        )
        if existing:
            logger.info(f"Re-authorizing connection {existing.id} for tenant {tenant_id}")
            updated = await self._connection_repo.reauthorize(
                existing.id,
                ReauthorizeConnectionDTO(
                    **self._encrypted_tokens(tokens),
                    name=name,
                    oauth_metadata=workspace.to_metadata(),
                ),
            )
            if updated is None:
                raise ConnectionNotFoundError(existing.id)
            return updated

        logger.info(
            f"Creating {provider_slug} connection for tenant {tenant_id}, "
            f"workspace {workspace.workspace_id}"
        )
        return await self._connection_repo.create(
            CreateConnectionDTO(
                tenant_id=tenant_id,
                provider_slug=provider_slug,
                name=name or workspace.name,
                workspace_id=workspace.workspace_id,
                oauth_metadata=workspace.to_metadata(),
                **self._encrypted_tokens(tokens),
            )
        )

    async def list_connections(self, tenant_id: int) -> list[Connection]:
        return await self._connection_repo.find_by_tenant(tenant_id)

    async def get_connection(self, tenant_id: int, connection_id: int) -> Connection:
        connection = await self._connection_repo.find_by_id_for_tenant(
            connection_id, tenant_id
        )
        if connection is None:
            logger.warning(f"Connection {connection_id} not found for tenant {tenant_id}")
            raise ConnectionNotFoundError(connection_id)
        return connection

    async def update_sync_settings(
        self, tenant_id: int, connection_id: int, sync_settings: SyncSettings
    ) -> Connection:
        await self.get_connection(tenant_id, connection_id)
        updated = await self._connection_repo.update_sync_settings(
            connection_id, sync_settings
        )
        if updated is None:
            raise ConnectionNotFoundError(connection_id)
        logger.info(f"Sync settings updated for connection {connection_id}")
        return updated

    async def revoke_connection(self, tenant_id: int, connection_id: int) -> bool:
        await self.get_connection(tenant_id, connection_id)
        revoked = await self._connection_repo.revoke(connection_id)
        logger.info(f"Connection {connection_id} revoked: {revoked}")
        return revoked

    async def get_sync_history(
        self, tenant_id: int, connection_id: int, limit: int = 10
    ) -> list[SyncRun]:
        await self.get_connection(tenant_id, connection_id)
        return await self._run_repo.find_by_connection(connection_id, tenant_id, limit)

    async def get_current_run(self, tenant_id: int, connection_id: int) -> SyncRun | None:
        await self.get_connection(tenant_id, connection_id)
        return await self._run_repo.find_in_progress(connection_id)

    async def refresh_token(self, tenant_id: int, connection_id: int) -> Connection:
        connection = await self.get_connection(tenant_id, connection_id)
        await self._token_manager.refresh(connection)
        logger.info(f"Token manually refreshed for connection {connection_id}")
        return connection

    async def get_entity(
        self, tenant_id: int, connection_id: int, external_id: str
    ) -> RemoteEntity:
        await self.get_connection(tenant_id, connection_id)
        entity = await self._entity_repo.find_by_external_id(
            tenant_id, connection_id, external_id
        )
        if entity is None:
            raise RemoteEntityNotFoundError(connection_id, external_id)
        return entity

    def _encrypted_tokens(self, tokens: TokenResponse) -> dict:
        return {
            "access_token_encrypted": self._cipher.encrypt(tokens.access_token),
            "refresh_token_encrypted": (
                self._cipher.encrypt(tokens.refresh_token)
                if tokens.refresh_token
                else None
            ),
            "token_expires_at": compute_expires_at(tokens.expires_in),
            "scope": tokens.scope,
        }
