import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from connector_sync.constants.enums import (
    SyncRunKind,
    SyncRunStatus,
    UpsertOutcome,
    WebhookAction,
    WebhookResultStatus,
)
from connector_sync.dtos.sync_run_dtos import CreateSyncRunDTO
from connector_sync.integrations.core.credentials import TokenLifecycleManager
from connector_sync.integrations.core.exceptions import ConcurrencyError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import WebhookEvent
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit
from connector_sync.repositories.connection_repository import ConnectionRepository
from connector_sync.repositories.parent_unit_repository import ParentUnitRepository
from connector_sync.repositories.remote_entity_repository import RemoteEntityRepository
from connector_sync.repositories.sync_run_repository import SyncRunRepository
from connector_sync.services.fetch_loop import SyncRunStats
from connector_sync.services.sync_lock import SyncLockRegistry, sync_lock_registry
from connector_sync.services.sync_orchestrator import describe_error
from connector_sync.services.upsert_engine import UpsertEngine
from connector_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    event_type: str
    parent_key: str
    item_id: str
    status: WebhookResultStatus
    connection_id: int | None = None
    sync_run_id: int | None = None
    reason: str | None = None


class WebhookIngestor:
    """Turns vendor push notifications into single-item upserts or deletes.

    ``handle`` never raises: every event ends up as a ``WebhookResult`` and,
    once its connection is known, as a webhook ``SyncRun``.
    """

    def __init__(
        self,
        connection_repository: ConnectionRepository,
        sync_run_repository: SyncRunRepository,
        parent_unit_repository: ParentUnitRepository,
        entity_repository: RemoteEntityRepository,
        token_manager: TokenLifecycleManager,
        upsert_engine: UpsertEngine,
        provider_resolver: Callable[[str], IConnectorProvider],
        lock_registry: SyncLockRegistry = sync_lock_registry,
    ):
        self._connection_repo = connection_repository
        self._run_repo = sync_run_repository
        self._parent_unit_repo = parent_unit_repository
        self._entity_repo = entity_repository
        self._token_manager = token_manager
        self._upsert_engine = upsert_engine
        self._provider_resolver = provider_resolver
        self._locks = lock_registry

    async def handle(
        self,
        provider_slug: str,
        payload: dict[str, Any],
        connection_id: int | None = None,
    ) -> list[WebhookResult]:
        try:
            provider = self._provider_resolver(provider_slug)
            events = provider.parse_webhook(payload)
        except Exception as e:
            logger.warning(f"Ignoring {provider_slug} webhook payload: {e}")
            return []

        if not events:
            logger.debug(f"No actionable events in {provider_slug} webhook")

        results = []
        for event in events:
            try:
                result = await self._handle_event(provider, event, connection_id)
            except Exception as e:
                logger.error(
                    f"Webhook {event.event_type} for {event.item_id} failed: {e}"
                )
                result = self._result(event, WebhookResultStatus.FAILED, reason=str(e))
            results.append(result)
        return results

    async def _handle_event(
        self,
        provider: IConnectorProvider,
        event: WebhookEvent,
        connection_id: int | None,
    ) -> WebhookResult:
        units = await self._parent_unit_repo.find_by_key(
            provider.provider_slug, event.parent_key, connection_id
        )
        if not units:
            logger.info(
                f"Dropping {event.event_type}: no connection syncs "
                f"{provider.provider_slug} parent {event.parent_key}"
            )
            return self._result(
                event, WebhookResultStatus.DROPPED, reason="unknown parent unit"
            )
        if len({unit.connection_id for unit in units}) > 1:
            logger.warning(
                f"Dropping {event.event_type}: parent {event.parent_key} matches "
                f"{len(units)} connections"
            )
            return self._result(
                event, WebhookResultStatus.DROPPED, reason="ambiguous parent unit"
            )

        unit = units[0]
        try:
            async with self._locks.hold(unit.connection_id):
                return await self._ingest(provider, event, unit)
        except ConcurrencyError as e:
            logger.info(f"Dropping {event.event_type} for {event.item_id}: {e.message}")
            return self._result(
                event,
                WebhookResultStatus.DROPPED,
                connection_id=unit.connection_id,
                reason="sync in progress",
            )

    async def _ingest(
        self,
        provider: IConnectorProvider,
        event: WebhookEvent,
        unit: ParentUnit,
    ) -> WebhookResult:
        connection = await self._connection_repo.find_by_id(unit.connection_id)
        if connection is None or not connection.is_active:
            return self._result(
                event,
                WebhookResultStatus.DROPPED,
                connection_id=unit.connection_id,
                reason="connection inactive",
            )

        event_stats = {
            "event_type": event.event_type,
            "item_id": event.item_id,
            "action": event.action.value,
        }
        run = await self._run_repo.create(
            CreateSyncRunDTO(
                tenant_id=connection.tenant_id,
                connection_id=connection.id,
                kind=SyncRunKind.WEBHOOK,
                status=SyncRunStatus.IN_PROGRESS,
                started_at=utcnow(),
                stats_json=event_stats,
            )
        )
        stats = SyncRunStats(parent_keys=[unit.key], parent_units_processed=1)
        clock = time.monotonic()

        try:
            if event.action == WebhookAction.DELETE:
                status = await self._delete(event, connection)
            else:
                status = await self._upsert(provider, event, connection, unit, stats)
        except Exception as e:
            message, details = describe_error(e)
            logger.error(
                f"Webhook run {run.id} failed for connection {connection.id}: {message}"
            )
            if event.action == WebhookAction.UPSERT:
                stats.items_failed += 1
            dto = stats.to_finalize_dto(
                SyncRunStatus.FAILED,
                max(utcnow(), run.started_at),
                time.monotonic() - clock,
                **event_stats,
            )
            dto.error_message = message
            dto.error_details = details
            await self._run_repo.finalize(run.id, dto)
            return self._result(
                event,
                WebhookResultStatus.FAILED,
                connection_id=connection.id,
                sync_run_id=run.id,
                reason=message,
            )

        await self._run_repo.finalize(
            run.id,
            stats.to_finalize_dto(
                SyncRunStatus.COMPLETED,
                max(utcnow(), run.started_at),
                time.monotonic() - clock,
                **event_stats,
            ),
        )
        logger.info(
            f"Webhook {event.event_type} for {event.item_id} on connection "
            f"{connection.id}: {status.value}"
        )
        return self._result(
            event, status, connection_id=connection.id, sync_run_id=run.id
        )

    async def _upsert(
        self,
        provider: IConnectorProvider,
        event: WebhookEvent,
        connection: Connection,
        unit: ParentUnit,
        stats: SyncRunStats,
    ) -> WebhookResultStatus:
        auth_context = await self._token_manager.ensure_valid_token(connection)
        request = provider.build_item_request(connection, unit, event.item_id)

        async with provider.create_api_client() as client:
            stats.api_calls_count += 1
            response = await client.execute(request, auth_context)

        raw_item = provider.extract_single_item(response.data)
        outcome = await self._upsert_engine.upsert(
            connection.tenant_id, connection, unit, raw_item
        )
        stats.record(outcome)
        if outcome == UpsertOutcome.SKIPPED:
            return WebhookResultStatus.SKIPPED
        return WebhookResultStatus.PROCESSED

    async def _delete(
        self, event: WebhookEvent, connection: Connection
    ) -> WebhookResultStatus:
        deleted = await self._entity_repo.soft_delete(
            connection.tenant_id, connection.id, event.item_id
        )
        if not deleted:
            logger.debug(f"Delete for unknown item {event.item_id}, nothing to do")
        return WebhookResultStatus.DELETED

    @staticmethod
    def _result(
        event: WebhookEvent, status: WebhookResultStatus, **kwargs: Any
    ) -> WebhookResult:
        return WebhookResult(
            event_type=event.event_type,
            parent_key=event.parent_key,
            item_id=event.item_id,
            status=status,
            **kwargs,
        )
