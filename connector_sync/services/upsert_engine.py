import logging
from collections.abc import Callable
from typing import Any

import asyncpg

from connector_sync.constants.enums import EntityType, UpsertOutcome
from connector_sync.dtos.entity_dtos import UpsertRemoteEntityDTO
from connector_sync.integrations.core.exceptions import ItemUpsertError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import NormalizedItemBase
from connector_sync.models.connection import Connection, SyncSettings
from connector_sync.models.parent_unit import ParentUnit
from connector_sync.repositories.remote_entity_repository import RemoteEntityRepository
from connector_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _matches(value: str | None, allowed: list[str]) -> bool:
    if not allowed:
        return True
    if value is None:
        return False
    wanted = {entry.casefold() for entry in allowed}
    return value.casefold() in wanted


def passes_filters(item: NormalizedItemBase, sync_settings: SyncSettings) -> bool:
    return _matches(item.item_type, sync_settings.item_type_filter) and _matches(
        item.status, sync_settings.status_filter
    )


def _raw_identifier(raw_item: Any) -> str | None:
    if isinstance(raw_item, dict):
        for key in ("key", "id", "sys_id"):
            value = raw_item.get(key)
            if isinstance(value, dict):
                value = value.get("value")
            if value:
                return str(value)
    return None


class UpsertEngine:
    def __init__(
        self,
        entity_repository: RemoteEntityRepository,
        provider_resolver: Callable[[str], IConnectorProvider],
    ):
        self._entity_repository = entity_repository
        self._provider_resolver = provider_resolver

    async def upsert(
        self,
        tenant_id: int,
        connection: Connection,
        parent_unit: ParentUnit | None,
        raw_item: dict[str, Any],
    ) -> UpsertOutcome:
        provider = self._provider_resolver(connection.provider_slug)

        try:
            item = provider.adapt_item(raw_item)
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            raise ItemUpsertError(
                _raw_identifier(raw_item), f"malformed payload: {e}"
            ) from e

        if not passes_filters(item, connection.sync_settings):
            logger.debug(
                f"Skipping {item.external_key or item.external_id}: "
                f"type={item.item_type} status={item.status} filtered out"
            )
            return UpsertOutcome.SKIPPED

        dto = self._build_dto(tenant_id, connection, parent_unit, provider, item)
        try:
            _, inserted = await self._entity_repository.upsert(dto)
        except asyncpg.PostgresError as e:
            raise ItemUpsertError(item.external_id, str(e)) from e

        return UpsertOutcome.CREATED if inserted else UpsertOutcome.UPDATED

    def _build_dto(
        self,
        tenant_id: int,
        connection: Connection,
        parent_unit: ParentUnit | None,
        provider: IConnectorProvider,
        item: NormalizedItemBase,
    ) -> UpsertRemoteEntityDTO:
        sync_settings = connection.sync_settings
        return UpsertRemoteEntityDTO(
            tenant_id=tenant_id,
            connection_id=connection.id,
            parent_unit_id=parent_unit.id if parent_unit else None,
            provider_slug=connection.provider_slug,
            entity_type=EntityType(provider.entity_type),
            external_id=item.external_id,
            external_key=item.external_key,
            title=item.title,
            status=item.status,
            item_type=item.item_type,
            remote_created_at=item.remote_created_at,
            remote_updated_at=item.remote_updated_at,
            fields=item.extra_fields(),
            comments=item.comments if sync_settings.sync_comments else None,
            attachments=item.attachments if sync_settings.sync_attachments else None,
            history=item.history,
            raw_data=item.raw_data,
            synced_at=utcnow(),
        )
