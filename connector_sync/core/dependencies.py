import logging
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Annotated

import asyncpg
from fastapi import Depends, Header

from connector_sync.core.exceptions import TenantRequiredException
from connector_sync.core.settings import settings
from connector_sync.database import db_connection
from connector_sync.integrations.core.credentials import TokenCipher, TokenLifecycleManager
from connector_sync.integrations.providers.factory import require_provider
from connector_sync.models.connection import Connection
from connector_sync.repositories.connection_repository import ConnectionRepository
from connector_sync.repositories.parent_unit_repository import ParentUnitRepository
from connector_sync.repositories.remote_entity_repository import RemoteEntityRepository
from connector_sync.repositories.sync_run_repository import SyncRunRepository
from connector_sync.services.connection_service import ConnectionService
from connector_sync.services.fetch_loop import PaginatedFetchLoop
from connector_sync.services.sync_orchestrator import SyncOrchestrator
from connector_sync.services.upsert_engine import UpsertEngine
from connector_sync.services.webhook_ingestor import WebhookIngestor

logger = logging.getLogger(__name__)

WebhookIngestorScope = Callable[[], AbstractAsyncContextManager[WebhookIngestor]]


async def get_db_session() -> AsyncGenerator[asyncpg.Connection, None]:
    async with db_connection.get_connection() as conn:
        yield conn


def get_connection_repository(
    conn: asyncpg.Connection = Depends(get_db_session),
) -> ConnectionRepository:
    return ConnectionRepository(conn)


def get_sync_run_repository(
    conn: asyncpg.Connection = Depends(get_db_session),
) -> SyncRunRepository:
    return SyncRunRepository(conn)


def get_parent_unit_repository(
    conn: asyncpg.Connection = Depends(get_db_session),
) -> ParentUnitRepository:
    return ParentUnitRepository(conn)


def get_remote_entity_repository(
    conn: asyncpg.Connection = Depends(get_db_session),
) -> RemoteEntityRepository:
    return RemoteEntityRepository(conn)


def get_token_cipher() -> TokenCipher:
    return TokenCipher(settings.encryption_key)


def get_token_manager(
    connection_repository: ConnectionRepository = Depends(get_connection_repository),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        connection_repository,
        cipher,
        require_provider,
        refresh_buffer_seconds=settings.token_refresh_buffer_seconds,
    )


def get_upsert_engine(
    entity_repository: RemoteEntityRepository = Depends(get_remote_entity_repository),
) -> UpsertEngine:
    return UpsertEngine(entity_repository, require_provider)


def get_fetch_loop(
    upsert_engine: UpsertEngine = Depends(get_upsert_engine),
) -> PaginatedFetchLoop:
    return PaginatedFetchLoop(
        upsert_engine,
        page_size=settings.sync_page_size,
        max_items_per_unit=settings.sync_max_items_per_unit,
    )


def get_sync_orchestrator(
    connection_repository: ConnectionRepository = Depends(get_connection_repository),
    sync_run_repository: SyncRunRepository = Depends(get_sync_run_repository),
    parent_unit_repository: ParentUnitRepository = Depends(get_parent_unit_repository),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
    fetch_loop: PaginatedFetchLoop = Depends(get_fetch_loop),
) -> SyncOrchestrator:
    return SyncOrchestrator(
        connection_repository=connection_repository,
        sync_run_repository=sync_run_repository,
        parent_unit_repository=parent_unit_repository,
        token_manager=token_manager,
        fetch_loop=fetch_loop,
        provider_resolver=require_provider,
    )


def get_connection_service(
    connection_repository: ConnectionRepository = Depends(get_connection_repository),
    sync_run_repository: SyncRunRepository = Depends(get_sync_run_repository),
    entity_repository: RemoteEntityRepository = Depends(get_remote_entity_repository),
    cipher: TokenCipher = Depends(get_token_cipher),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
) -> ConnectionService:
    return ConnectionService(
        connection_repository=connection_repository,
        sync_run_repository=sync_run_repository,
        entity_repository=entity_repository,
        cipher=cipher,
        token_manager=token_manager,
        provider_resolver=require_provider,
    )


def get_tenant_id(
    x_tenant_id: Annotated[int | None, Header(alias="X-Tenant-Id")] = None,
) -> int:
    if x_tenant_id is None:
        raise TenantRequiredException()
    return x_tenant_id


def build_sync_orchestrator(conn: asyncpg.Connection) -> SyncOrchestrator:
    """Wire an orchestrator outside of a request, e.g. for scheduler workers."""
    connection_repository = ConnectionRepository(conn)
    upsert_engine = UpsertEngine(RemoteEntityRepository(conn), require_provider)
    return SyncOrchestrator(
        connection_repository=connection_repository,
        sync_run_repository=SyncRunRepository(conn),
        parent_unit_repository=ParentUnitRepository(conn),
        token_manager=get_token_manager(connection_repository, get_token_cipher()),
        fetch_loop=get_fetch_loop(upsert_engine),
        provider_resolver=require_provider,
    )


def build_webhook_ingestor(conn: asyncpg.Connection) -> WebhookIngestor:
    connection_repository = ConnectionRepository(conn)
    entity_repository = RemoteEntityRepository(conn)
    return WebhookIngestor(
        connection_repository=connection_repository,
        sync_run_repository=SyncRunRepository(conn),
        parent_unit_repository=ParentUnitRepository(conn),
        entity_repository=entity_repository,
        token_manager=get_token_manager(connection_repository, get_token_cipher()),
        upsert_engine=UpsertEngine(entity_repository, require_provider),
        provider_resolver=require_provider,
    )


@asynccontextmanager
async def webhook_ingestor_scope() -> AsyncIterator[WebhookIngestor]:
    async with db_connection.get_connection() as conn:
        yield build_webhook_ingestor(conn)


def get_webhook_ingestor_scope() -> WebhookIngestorScope:
    """The route opens the scope itself, inside its own error handling."""
    return webhook_ingestor_scope


async def run_scheduled_sync(tenant_id: int, connection_id: int) -> None:
    async with db_connection.get_connection() as conn:
        orchestrator = build_sync_orchestrator(conn)
        await orchestrator.sync_connection(tenant_id, connection_id)


async def load_active_connections() -> list[Connection]:
    async with db_connection.get_connection() as conn:
        return await ConnectionRepository(conn).find_active_connections()


TenantIdDep = Annotated[int, Depends(get_tenant_id)]
SyncOrchestratorDep = Annotated[SyncOrchestrator, Depends(get_sync_orchestrator)]
WebhookIngestorScopeDep = Annotated[
    WebhookIngestorScope, Depends(get_webhook_ingestor_scope)
]
ConnectionServiceDep = Annotated[ConnectionService, Depends(get_connection_service)]
