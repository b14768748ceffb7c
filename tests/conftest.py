"""Shared fixtures: in-memory repositories, a scripted API client and a fake vendor."""

import itertools
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import pytest
from cryptography.fernet import Fernet

from connector_sync.constants.enums import (
    ConnectionStatus,
    EntityType,
    SyncRunStatus,
    WebhookAction,
)
from connector_sync.dtos.connection_dtos import (
    CreateConnectionDTO,
    ReauthorizeConnectionDTO,
    UpdateTokensDTO,
)
from connector_sync.dtos.entity_dtos import UpsertParentUnitDTO, UpsertRemoteEntityDTO
from connector_sync.dtos.sync_run_dtos import CreateSyncRunDTO, FinalizeSyncRunDTO
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.credentials import TokenCipher, TokenLifecycleManager
from connector_sync.integrations.core.exceptions import ProviderNotFoundError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.pagination import OffsetPagination
from connector_sync.integrations.core.types import (
    ApiResponse,
    AuthContext,
    HttpMethod,
    IssueItem,
    RequestDefinition,
    TokenResponse,
    UnifiedParentUnit,
    WebhookEvent,
    WorkspaceInfo,
)
from connector_sync.models.connection import Connection, SyncSettings
from connector_sync.models.parent_unit import ParentUnit
from connector_sync.models.remote_entity import RemoteEntity
from connector_sync.models.sync_run import SyncRun
from connector_sync.services.connection_service import ConnectionService
from connector_sync.services.fetch_loop import PaginatedFetchLoop
from connector_sync.services.sync_lock import SyncLockRegistry
from connector_sync.services.sync_orchestrator import SyncOrchestrator
from connector_sync.services.upsert_engine import UpsertEngine
from connector_sync.services.webhook_ingestor import WebhookIngestor
from connector_sync.utils.dates import utcnow

FAKE_SLUG = "fake"
FAKE_BASE_URL = "https://fake.test"


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class FakeConnectionRepository:
    def __init__(self):
        self.rows: dict[int, Connection] = {}
        self.token_updates: list[UpdateTokensDTO] = []
        self._ids = itertools.count(1)

    def add(self, connection: Connection) -> Connection:
        self.rows[connection.id] = connection
        return connection.model_copy(deep=True)

    def next_id(self) -> int:
        return next(self._ids)

    def _live(self, connection_id: int) -> Connection | None:
        row = self.rows.get(connection_id)
        if row is None or row.deleted_at is not None:
            return None
        return row

    async def find_by_id(self, connection_id: int) -> Connection | None:
        row = self._live(connection_id)
        return row.model_copy(deep=True) if row else None

    async def find_by_id_for_tenant(
        self, connection_id: int, tenant_id: int
    ) -> Connection | None:
        row = self._live(connection_id)
        if row is None or row.tenant_id != tenant_id:
            return None
        return row.model_copy(deep=True)

    async def find_by_tenant(self, tenant_id: int) -> list[Connection]:
        return [
            row.model_copy(deep=True)
            for row in self.rows.values()
            if row.tenant_id == tenant_id and row.deleted_at is None
        ]

    async def find_by_workspace(
        self, tenant_id: int, provider_slug: str, workspace_id: str | None
    ) -> Connection | None:
        for row in self.rows.values():
            if (
                row.tenant_id == tenant_id
                and row.provider_slug == provider_slug
                and row.workspace_id == workspace_id
                and row.deleted_at is None
            ):
                return row.model_copy(deep=True)
        return None

    async def find_active_connections(self) -> list[Connection]:
        return [
            row.model_copy(deep=True)
            for row in self.rows.values()
            if row.is_active and row.deleted_at is None
        ]

    async def create(self, dto: CreateConnectionDTO) -> Connection:
        now = utcnow()
        connection = Connection(
            id=self.next_id(), created_at=now, updated_at=now, **dto.model_dump()
        )
        return self.add(connection)

    async def reauthorize(
        self, connection_id: int, dto: ReauthorizeConnectionDTO
    ) -> Connection | None:
        row = self._live(connection_id)
        if row is None:
            return None
        row.access_token_encrypted = dto.access_token_encrypted
        row.refresh_token_encrypted = (
            dto.refresh_token_encrypted or row.refresh_token_encrypted
        )
        row.token_expires_at = dto.token_expires_at
        row.scope = dto.scope
        row.name = dto.name or row.name
        row.oauth_metadata = dto.oauth_metadata
        row.status = ConnectionStatus.ACTIVE
        row.is_active = True
        row.last_sync_error = None
        return row.model_copy(deep=True)

    async def update_tokens(
        self, connection_id: int, dto: UpdateTokensDTO
    ) -> Connection | None:
        self.token_updates.append(dto)
        row = self.rows[connection_id]
        row.access_token_encrypted = dto.access_token_encrypted
        row.refresh_token_encrypted = dto.refresh_token_encrypted
        row.token_expires_at = dto.token_expires_at
        row.scope = dto.scope or row.scope
        return row.model_copy(deep=True)

    async def update_sync_settings(
        self, connection_id: int, sync_settings: SyncSettings
    ) -> Connection | None:
        row = self._live(connection_id)
        if row is None:
            return None
        row.sync_settings = sync_settings
        return row.model_copy(deep=True)

    async def mark_sync_started(self, connection_id: int, started_at: datetime) -> None:
        self.rows[connection_id].last_sync_at = started_at

    async def mark_sync_succeeded(
        self, connection_id: int, completed_at: datetime, items_synced: int
    ) -> None:
        row = self.rows[connection_id]
        previous = row.last_successful_sync_at
        row.last_successful_sync_at = (
            max(previous, completed_at) if previous else completed_at
        )
        row.failed_sync_attempts = 0
        row.last_sync_error = None
        row.total_items_synced += items_synced
        row.status = ConnectionStatus.ACTIVE

    async def mark_sync_failed(self, connection_id: int, error: str) -> None:
        row = self.rows[connection_id]
        row.failed_sync_attempts += 1
        row.last_sync_error = error

    async def revoke(self, connection_id: int) -> bool:
        row = self._live(connection_id)
        if row is None:
            return False
        row.is_active = False
        row.status = ConnectionStatus.REVOKED
        row.deleted_at = utcnow()
        return True


class FakeSyncRunRepository:
    def __init__(self):
        self.rows: dict[int, SyncRun] = {}
        self._ids = itertools.count(1)

    async def create(self, dto: CreateSyncRunDTO) -> SyncRun:
        if dto.status == SyncRunStatus.IN_PROGRESS:
            assert await self.find_in_progress(dto.connection_id) is None, (
                "only one in_progress run per connection"
            )
        run = SyncRun(id=next(self._ids), **dto.model_dump())
        self.rows[run.id] = run
        return run.model_copy(deep=True)

    async def finalize(self, run_id: int, dto: FinalizeSyncRunDTO) -> SyncRun | None:
        run = self.rows.get(run_id)
        if run is None or run.status != SyncRunStatus.IN_PROGRESS:
            return None
        updated = run.model_copy(update=dto.model_dump())
        self.rows[run_id] = updated
        return updated.model_copy(deep=True)

    async def find_by_connection(
        self, connection_id: int, tenant_id: int, limit: int = 10
    ) -> list[SyncRun]:
        runs = [
            run
            for run in self.rows.values()
            if run.connection_id == connection_id and run.tenant_id == tenant_id
        ]
        runs.sort(key=lambda run: (run.started_at, run.id), reverse=True)
        return runs[:limit]

    async def find_in_progress(self, connection_id: int) -> SyncRun | None:
        for run in self.rows.values():
            if (
                run.connection_id == connection_id
                and run.status == SyncRunStatus.IN_PROGRESS
            ):
                return run
        return None

    async def cancel_abandoned_runs(self, reason: str) -> int:
        cancelled = 0
        for run_id, run in list(self.rows.items()):
            if run.status == SyncRunStatus.IN_PROGRESS:
                self.rows[run_id] = run.model_copy(
                    update={
                        "status": SyncRunStatus.CANCELLED,
                        "completed_at": utcnow(),
                        "error_message": reason,
                    }
                )
                cancelled += 1
        return cancelled


class FakeParentUnitRepository:
    def __init__(self, connections: FakeConnectionRepository):
        self.rows: dict[int, ParentUnit] = {}
        self.synced: list[int] = []
        self._connections = connections
        self._ids = itertools.count(1)

    async def upsert(self, dto: UpsertParentUnitDTO) -> ParentUnit:
        for unit_id, unit in self.rows.items():
            if (
                unit.connection_id == dto.connection_id
                and unit.external_id == dto.external_id
            ):
                updated = unit.model_copy(
                    update={"key": dto.key, "name": dto.name, "metadata": dto.metadata}
                )
                self.rows[unit_id] = updated
                return updated
        now = utcnow()
        unit = ParentUnit(
            id=next(self._ids), created_at=now, updated_at=now, **dto.model_dump()
        )
        self.rows[unit.id] = unit
        return unit

    async def find_by_connection(self, connection_id: int) -> list[ParentUnit]:
        return [u for u in self.rows.values() if u.connection_id == connection_id]

    async def find_by_key(
        self, provider_slug: str, key: str, connection_id: int | None = None
    ) -> list[ParentUnit]:
        matches = []
        for unit in self.rows.values():
            connection = self._connections.rows.get(unit.connection_id)
            if connection is None or connection.provider_slug != provider_slug:
                continue
            if not connection.is_active or connection.deleted_at is not None:
                continue
            if key not in (unit.key, unit.external_id):
                continue
            if connection_id is not None and unit.connection_id != connection_id:
                continue
            matches.append(unit)
        return matches

    async def mark_synced(self, unit_id: int, synced_at: datetime) -> None:
        self.synced.append(unit_id)
        self.rows[unit_id] = self.rows[unit_id].model_copy(
            update={"last_synced_at": synced_at}
        )


class FakeRemoteEntityRepository:
    def __init__(self):
        self.rows: dict[tuple[int, int, str], RemoteEntity] = {}
        self._ids = itertools.count(1)
        self.fail_with: Exception | None = None

    async def upsert(self, dto: UpsertRemoteEntityDTO) -> tuple[RemoteEntity, bool]:
        if self.fail_with is not None:
            raise self.fail_with
        key = (dto.tenant_id, dto.connection_id, dto.external_id)
        existing = self.rows.get(key)
        data = dto.model_dump(exclude={"synced_at"})
        if existing is None:
            entity = RemoteEntity(
                id=next(self._ids),
                last_synced_at=dto.synced_at,
                created_at=dto.synced_at,
                updated_at=dto.synced_at,
                **data,
            )
            self.rows[key] = entity
            return entity, True

        entity = existing.model_copy(
            update={
                **data,
                "last_synced_at": dto.synced_at,
                "updated_at": dto.synced_at,
                "is_deleted": False,
                "deleted_at": None,
            }
        )
        self.rows[key] = entity
        return entity, False

    async def find_by_external_id(
        self, tenant_id: int, connection_id: int, external_id: str
    ) -> RemoteEntity | None:
        for key, entity in self.rows.items():
            if key[:2] != (tenant_id, connection_id) or entity.is_deleted:
                continue
            if external_id in (entity.external_id, entity.external_key):
                return entity
        return None

    async def soft_delete(
        self, tenant_id: int, connection_id: int, external_id: str
    ) -> bool:
        for key, entity in self.rows.items():
            if key[:2] != (tenant_id, connection_id) or entity.is_deleted:
                continue
            if external_id in (entity.external_id, entity.external_key):
                self.rows[key] = entity.model_copy(
                    update={"is_deleted": True, "deleted_at": utcnow()}
                )
                return True
        return False


# ---------------------------------------------------------------------------
# Vendor side
# ---------------------------------------------------------------------------


class FakeApiClient(ApiClient):
    """ApiClient whose transport replays scripted responses per URL."""

    def __init__(self):
        super().__init__()
        self.responses: dict[str, list[tuple[int, dict[str, Any]]]] = {}
        self.calls: list[RequestDefinition] = []
        self.gate = None

    def add_pages(self, url: str, *pages: dict[str, Any], status: int = 200) -> None:
        self.responses.setdefault(url, []).extend((status, page) for page in pages)

    async def __aenter__(self) -> "FakeApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def _make_request(
        self, request: RequestDefinition, headers: dict[str, str]
    ) -> ApiResponse:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        queue = self.responses.get(request.url) or []
        status, data = queue.pop(0) if queue else (200, {})
        return ApiResponse(status_code=status, data=data)

    def calls_to(self, url: str) -> list[RequestDefinition]:
        return [call for call in self.calls if call.url == url]


def items_url(unit_key: str) -> str:
    return f"{FAKE_BASE_URL}/units/{unit_key}/items"


def item_url(item_id: str) -> str:
    return f"{FAKE_BASE_URL}/items/{item_id}"


def raw_issue(item_id: str, title: str = "Title", **extra: Any) -> dict[str, Any]:
    return {"id": item_id, "title": title, "status": "Open", "type": "Bug", **extra}


class FakeProvider(IConnectorProvider):
    def __init__(self, client: FakeApiClient):
        self.client = client
        self.units = [UnifiedParentUnit(external_id="10", key="ALPHA", name="Alpha")]
        self.refresh_calls: list[str] = []
        self.refresh_response = TokenResponse(
            access_token="refreshed-access", refresh_token=None, expires_in=3600
        )
        self.refresh_error: Exception | None = None
        self.workspace = WorkspaceInfo(workspace_id="ws-1", name="Fake Workspace")

    @property
    def provider_slug(self) -> str:
        return FAKE_SLUG

    @property
    def entity_type(self) -> EntityType:
        return EntityType.ISSUE

    def create_api_client(self) -> ApiClient:
        return self.client

    def get_authorization_url(
        self, state: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> str:
        return f"{FAKE_BASE_URL}/authorize?state={state}&redirect_uri={redirect_uri}"

    async def exchange_code_for_tokens(
        self, code: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> TokenResponse:
        return TokenResponse(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_in=3600,
            scope="read",
        )

    async def refresh_access_token(
        self, refresh_token: str, workspace_id: str | None = None
    ) -> TokenResponse:
        self.refresh_calls.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refresh_response

    async def resolve_workspace(
        self, auth_context: AuthContext, workspace_hint: str | None = None
    ) -> WorkspaceInfo:
        return self.workspace

    async def list_parent_units(
        self, client: ApiClient, auth_context: AuthContext, connection: Connection
    ) -> AsyncGenerator[list[UnifiedParentUnit], None]:
        await client.execute(
            RequestDefinition(HttpMethod.GET, f"{FAKE_BASE_URL}/units"), auth_context
        )
        yield list(self.units)

    def get_items_paginator(self, page_size: int) -> OffsetPagination:
        return OffsetPagination(
            offset_param="startAt",
            limit_param="maxResults",
            items_key="issues",
            default_limit=page_size,
        )

    def build_items_request(
        self,
        connection: Connection,
        parent_unit: ParentUnit,
        since: datetime | None,
    ) -> RequestDefinition:
        params = {"updatedSince": since.isoformat()} if since else {}
        return RequestDefinition(HttpMethod.GET, items_url(parent_unit.key), params=params)

    def build_item_request(
        self, connection: Connection, parent_unit: ParentUnit, item_id: str
    ) -> RequestDefinition:
        return RequestDefinition(HttpMethod.GET, item_url(item_id))

    def adapt_item(self, raw_item: dict[str, Any]) -> IssueItem:
        return IssueItem.model_validate(
            {
                "external_id": raw_item["id"],
                "external_key": raw_item.get("key"),
                "title": raw_item.get("title"),
                "status": raw_item.get("status"),
                "item_type": raw_item.get("type"),
                "comments": raw_item.get("comments"),
                "attachments": raw_item.get("attachments"),
                "raw_data": raw_item,
            }
        )

    def parse_webhook(self, payload: dict[str, Any]) -> list[WebhookEvent]:
        if not payload.get("id"):
            return []
        return [
            WebhookEvent(
                action=WebhookAction(payload.get("action", "upsert")),
                parent_key=payload["project"],
                item_id=payload["id"],
                event_type=f"fake:{payload.get('action', 'upsert')}",
                raw_data=payload,
            )
        ]


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class SyncHarness:
    cipher: TokenCipher
    connections: FakeConnectionRepository = field(default_factory=FakeConnectionRepository)
    runs: FakeSyncRunRepository = field(default_factory=FakeSyncRunRepository)
    entities: FakeRemoteEntityRepository = field(
        default_factory=FakeRemoteEntityRepository
    )
    client: FakeApiClient = field(default_factory=FakeApiClient)
    locks: SyncLockRegistry = field(default_factory=SyncLockRegistry)
    page_size: int = 2
    max_items_per_unit: int = 1000

    def __post_init__(self):
        self.units = FakeParentUnitRepository(self.connections)
        self.provider = FakeProvider(self.client)

    def resolve_provider(self, slug: str) -> IConnectorProvider:
        if slug != FAKE_SLUG:
            raise ProviderNotFoundError(slug)
        return self.provider

    @property
    def token_manager(self) -> TokenLifecycleManager:
        return TokenLifecycleManager(
            self.connections, self.cipher, self.resolve_provider
        )

    @property
    def upsert_engine(self) -> UpsertEngine:
        return UpsertEngine(self.entities, self.resolve_provider)

    @property
    def fetch_loop(self) -> PaginatedFetchLoop:
        return PaginatedFetchLoop(
            self.upsert_engine,
            page_size=self.page_size,
            max_items_per_unit=self.max_items_per_unit,
        )

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            connection_repository=self.connections,
            sync_run_repository=self.runs,
            parent_unit_repository=self.units,
            token_manager=self.token_manager,
            fetch_loop=self.fetch_loop,
            provider_resolver=self.resolve_provider,
            lock_registry=self.locks,
        )

    @property
    def ingestor(self) -> WebhookIngestor:
        return WebhookIngestor(
            connection_repository=self.connections,
            sync_run_repository=self.runs,
            parent_unit_repository=self.units,
            entity_repository=self.entities,
            token_manager=self.token_manager,
            upsert_engine=self.upsert_engine,
            provider_resolver=self.resolve_provider,
            lock_registry=self.locks,
        )

    @property
    def connection_service(self) -> ConnectionService:
        return ConnectionService(
            connection_repository=self.connections,
            sync_run_repository=self.runs,
            entity_repository=self.entities,
            cipher=self.cipher,
            token_manager=self.token_manager,
            provider_resolver=self.resolve_provider,
        )

    def add_connection(self, **overrides: Any) -> Connection:
        now = utcnow()
        values: dict[str, Any] = {
            "id": self.connections.next_id(),
            "tenant_id": 1,
            "provider_slug": FAKE_SLUG,
            "name": "Fake",
            "access_token_encrypted": self.cipher.encrypt("stored-access"),
            "refresh_token_encrypted": self.cipher.encrypt("stored-refresh"),
            "token_expires_at": now + timedelta(hours=1),
            "workspace_id": "ws-1",
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return self.connections.add(Connection(**values))

    async def add_unit(
        self, connection: Connection, key: str = "ALPHA", external_id: str = "10"
    ) -> ParentUnit:
        return await self.units.upsert(
            UpsertParentUnitDTO(
                tenant_id=connection.tenant_id,
                connection_id=connection.id,
                external_id=external_id,
                key=key,
                name=key.title(),
            )
        )


@pytest.fixture
def encryption_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def cipher(encryption_key) -> TokenCipher:
    return TokenCipher(encryption_key)


@pytest.fixture
def harness(cipher) -> SyncHarness:
    return SyncHarness(cipher=cipher)


def make_connection(**overrides: Any) -> Connection:
    now = utcnow()
    values: dict[str, Any] = {
        "id": 1,
        "tenant_id": 1,
        "provider_slug": FAKE_SLUG,
        "access_token_encrypted": "encrypted",
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return Connection(**values)


def make_parent_unit(**overrides: Any) -> ParentUnit:
    now = utcnow()
    values: dict[str, Any] = {
        "id": 1,
        "tenant_id": 1,
        "connection_id": 1,
        "external_id": "10",
        "key": "ALPHA",
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return ParentUnit(**values)
