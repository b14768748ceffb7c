import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from connector_sync.constants.enums import SyncRunStatus, UpsertOutcome
from connector_sync.dtos.sync_run_dtos import FinalizeSyncRunDTO
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.exceptions import ItemUpsertError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import AuthContext, RequestDefinition
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit
from connector_sync.services.upsert_engine import UpsertEngine

logger = logging.getLogger(__name__)


@dataclass
class SyncRunStats:
    parent_units_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_failed: int = 0
    items_skipped: int = 0
    api_calls_count: int = 0
    parent_keys: list[str] = field(default_factory=list)
    capped_parent_keys: list[str] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return self.items_created + self.items_updated

    def record(self, outcome: UpsertOutcome) -> None:
        if outcome == UpsertOutcome.CREATED:
            self.items_created += 1
        elif outcome == UpsertOutcome.UPDATED:
            self.items_updated += 1
        else:
            self.items_skipped += 1

    def to_stats_json(self) -> dict[str, Any]:
        return {
            "parent_keys": self.parent_keys,
            "items_skipped": self.items_skipped,
            "capped_parent_keys": self.capped_parent_keys,
        }

    def to_finalize_dto(
        self,
        status: SyncRunStatus,
        completed_at: datetime,
        duration_seconds: float,
        **extra_stats: Any,
    ) -> FinalizeSyncRunDTO:
        return FinalizeSyncRunDTO(
            status=status,
            completed_at=completed_at,
            parent_units_processed=self.parent_units_processed,
            items_created=self.items_created,
            items_updated=self.items_updated,
            items_failed=self.items_failed,
            total_processed=self.total_processed,
            api_calls_count=self.api_calls_count,
            duration_seconds=round(duration_seconds, 3),
            stats_json={**self.to_stats_json(), **extra_stats},
        )


@dataclass
class UnitSyncResult:
    parent_key: str
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    pages: int = 0
    capped: bool = False


@dataclass
class FetchContext:
    tenant_id: int
    connection: Connection
    provider: IConnectorProvider
    client: ApiClient
    auth_context: AuthContext
    since: datetime | None
    stats: SyncRunStats


class PaginatedFetchLoop:
    def __init__(
        self,
        upsert_engine: UpsertEngine,
        page_size: int = 50,
        max_items_per_unit: int = 1000,
    ):
        self._upsert_engine = upsert_engine
        self._page_size = page_size
        self._max_items_per_unit = max_items_per_unit

    async def run(self, context: FetchContext, parent_unit: ParentUnit) -> UnitSyncResult:
        """Fetch every page of one parent unit and hand each item to the upsert engine.

        Remote errors propagate; per-item failures are counted and skipped.
        Counters on ``context.stats`` are updated as items are processed, so a
        run that aborts mid-unit still reports what it did.
        """
        provider = context.provider
        paginator = provider.get_items_paginator(self._page_size)
        result = UnitSyncResult(parent_key=parent_unit.key)

        request: RequestDefinition | None = paginator.first_request(
            provider.build_items_request(context.connection, parent_unit, context.since)
        )

        while request is not None:
            context.stats.api_calls_count += 1
            response = await context.client.execute(request, context.auth_context)
            result.pages += 1

            items = paginator.extract_items(response.data)
            if not items:
                break

            for raw_item in items:
                if result.processed >= self._max_items_per_unit:
                    result.capped = True
                    break
                await self._process_item(context, parent_unit, raw_item, result)

            next_request = paginator.next_request(request, response.data)
            if next_request is not None and result.processed >= self._max_items_per_unit:
                result.capped = True

            if result.capped:
                logger.warning(
                    f"Reached cap of {self._max_items_per_unit} items for "
                    f"{parent_unit.key} on connection {context.connection.id}; "
                    f"partial sync"
                )
                context.stats.capped_parent_keys.append(parent_unit.key)
                break

            request = next_request

        logger.info(
            f"Unit {parent_unit.key}: processed={result.processed} "
            f"skipped={result.skipped} failed={result.failed} pages={result.pages}"
        )
        return result

    async def _process_item(
        self,
        context: FetchContext,
        parent_unit: ParentUnit,
        raw_item: dict[str, Any],
        result: UnitSyncResult,
    ) -> None:
        try:
            outcome = await self._upsert_engine.upsert(
                context.tenant_id, context.connection, parent_unit, raw_item
            )
        except ItemUpsertError as e:
            logger.error(f"Item upsert failed in {parent_unit.key}: {e.message}")
            context.stats.items_failed += 1
            result.failed += 1
            result.processed += 1
            return

        context.stats.record(outcome)
        if outcome == UpsertOutcome.SKIPPED:
            result.skipped += 1
        else:
            result.processed += 1
