import logging
import time
import traceback
from collections.abc import Callable

import asyncpg

from connector_sync.constants.enums import SyncRunKind, SyncRunStatus
from connector_sync.core.exceptions import AppException
from connector_sync.dtos.entity_dtos import UpsertParentUnitDTO
from connector_sync.dtos.sync_run_dtos import CreateSyncRunDTO
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.credentials import TokenLifecycleManager
from connector_sync.integrations.core.exceptions import (
    ConcurrencyError,
    ConnectionNotFoundError,
)
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import AuthContext
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit
from connector_sync.models.sync_run import SyncRun
from connector_sync.repositories.connection_repository import ConnectionRepository
from connector_sync.repositories.parent_unit_repository import ParentUnitRepository
from connector_sync.repositories.sync_run_repository import SyncRunRepository
from connector_sync.services.fetch_loop import (
    FetchContext,
    PaginatedFetchLoop,
    SyncRunStats,
)
from connector_sync.services.sync_lock import SyncLockRegistry, sync_lock_registry
from connector_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)


def select_sync_mode(connection: Connection, force_full: bool = False) -> SyncRunKind:
    if connection.last_successful_sync_at is not None and not force_full:
        return SyncRunKind.INCREMENTAL
    return SyncRunKind.FULL


def describe_error(error: BaseException) -> tuple[str, dict]:
    message = error.message if isinstance(error, AppException) else str(error)
    details = {
        "type": type(error).__name__,
        "code": getattr(error, "code", None),
        "traceback": "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
    }
    return message or type(error).__name__, details


class SyncOrchestrator:
    def __init__(
        self,
        connection_repository: ConnectionRepository,
        sync_run_repository: SyncRunRepository,
        parent_unit_repository: ParentUnitRepository,
        token_manager: TokenLifecycleManager,
        fetch_loop: PaginatedFetchLoop,
        provider_resolver: Callable[[str], IConnectorProvider],
        lock_registry: SyncLockRegistry = sync_lock_registry,
    ):
        self._connection_repo = connection_repository
        self._run_repo = sync_run_repository
        self._parent_unit_repo = parent_unit_repository
        self._token_manager = token_manager
        self._fetch_loop = fetch_loop
        self._provider_resolver = provider_resolver
        self._locks = lock_registry

    def is_sync_in_progress(self, connection_id: int) -> bool:
        return self._locks.is_in_progress(connection_id)

    async def sync_connection(
        self,
        tenant_id: int,
        connection_id: int,
        force_full: bool = False,
        parent_keys: list[str] | None = None,
    ) -> SyncRun:
        async with self._locks.hold(connection_id):
            connection = await self._connection_repo.find_by_id_for_tenant(
                connection_id, tenant_id
            )
            if connection is None:
                raise ConnectionNotFoundError(connection_id)
            return await self._run(connection, force_full, parent_keys)

    async def _run(
        self,
        connection: Connection,
        force_full: bool,
        parent_keys: list[str] | None,
    ) -> SyncRun:
        kind = select_sync_mode(connection, force_full)
        started_at = utcnow()
        try:
            run = await self._run_repo.create(
                CreateSyncRunDTO(
                    tenant_id=connection.tenant_id,
                    connection_id=connection.id,
                    kind=kind,
                    status=SyncRunStatus.IN_PROGRESS,
                    started_at=started_at,
                )
            )
        except asyncpg.UniqueViolationError as e:
            # another process holds the in_progress run for this connection
            logger.warning(
                f"Sync for connection {connection.id} already running elsewhere: {e}"
            )
            raise ConcurrencyError(connection.id) from e
        await self._connection_repo.mark_sync_started(connection.id, started_at)
        logger.info(
            f"Starting {kind.value} sync {run.id} for connection {connection.id} "
            f"({connection.provider_slug})"
        )

        stats = SyncRunStats()
        clock = time.monotonic()
        try:
            provider = self._provider_resolver(connection.provider_slug)
            auth_context = await self._token_manager.ensure_valid_token(connection)
            since = (
                connection.last_successful_sync_at
                if kind == SyncRunKind.INCREMENTAL
                else None
            )

            async with provider.create_api_client() as client:
                units = await self._collect_parent_units(
                    provider, client, auth_context, connection, parent_keys, stats
                )
                context = FetchContext(
                    tenant_id=connection.tenant_id,
                    connection=connection,
                    provider=provider,
                    client=client,
                    auth_context=auth_context,
                    since=since,
                    stats=stats,
                )
                for unit in units:
                    await self._fetch_loop.run(context, unit)
                    await self._parent_unit_repo.mark_synced(unit.id, utcnow())
                    stats.parent_units_processed += 1

            return await self._record_success(connection, run, stats, clock)
        except Exception as e:
            await self._record_failure(connection, run, stats, clock, e)
            raise

    async def _collect_parent_units(
        self,
        provider: IConnectorProvider,
        client: ApiClient,
        auth_context: AuthContext,
        connection: Connection,
        parent_keys: list[str] | None,
        stats: SyncRunStats,
    ) -> list[ParentUnit]:
        calls_before = client.request_count
        units: list[ParentUnit] = []
        async for batch in provider.list_parent_units(client, auth_context, connection):
            for unified in batch:
                unit = await self._parent_unit_repo.upsert(
                    UpsertParentUnitDTO(
                        tenant_id=connection.tenant_id,
                        connection_id=connection.id,
                        external_id=unified.external_id,
                        key=unified.key,
                        name=unified.name,
                        metadata=unified.metadata,
                    )
                )
                units.append(unit)
        stats.api_calls_count += client.request_count - calls_before

        wanted = set(parent_keys or connection.sync_settings.parent_filter)
        if wanted:
            units = [u for u in units if u.key in wanted or u.external_id in wanted]

        stats.parent_keys = [u.key for u in units]
        logger.info(
            f"Connection {connection.id}: {len(units)} parent units selected for sync"
        )
        return units

    async def _record_success(
        self,
        connection: Connection,
        run: SyncRun,
        stats: SyncRunStats,
        clock: float,
    ) -> SyncRun:
        completed_at = max(utcnow(), run.started_at)
        finalized = await self._run_repo.finalize(
            run.id,
            stats.to_finalize_dto(
                SyncRunStatus.COMPLETED, completed_at, time.monotonic() - clock
            ),
        )
        await self._connection_repo.mark_sync_succeeded(
            connection.id, completed_at, stats.total_processed
        )
        logger.info(
            f"Sync {run.id} completed for connection {connection.id}: "
            f"created={stats.items_created} updated={stats.items_updated} "
            f"failed={stats.items_failed} skipped={stats.items_skipped} "
            f"api_calls={stats.api_calls_count}"
        )
        return finalized or run

    async def _record_failure(
        self,
        connection: Connection,
        run: SyncRun,
        stats: SyncRunStats,
        clock: float,
        error: Exception,
    ) -> None:
        message, details = describe_error(error)
        logger.error(f"Sync {run.id} failed for connection {connection.id}: {message}")
        dto = stats.to_finalize_dto(
            SyncRunStatus.FAILED,
            max(utcnow(), run.started_at),
            time.monotonic() - clock,
        )
        dto.error_message = message
        dto.error_details = details
        try:
            await self._run_repo.finalize(run.id, dto)
        except Exception as e:
            logger.error(f"Could not finalize failed sync {run.id}: {e}")
        await self._connection_repo.mark_sync_failed(connection.id, message)
