from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

from connector_sync.constants.enums import EntityType
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.pagination import PaginationStrategy
from connector_sync.integrations.core.types import (
    AuthContext,
    NormalizedItem,
    RequestDefinition,
    TokenResponse,
    UnifiedParentUnit,
    WebhookEvent,
    WorkspaceInfo,
)
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit


class IConnectorProvider(ABC):
    @property
    @abstractmethod
    def provider_slug(self) -> str:
        pass

    @property
    @abstractmethod
    def entity_type(self) -> EntityType:
        pass

    @abstractmethod
    def create_api_client(self) -> ApiClient:
        pass

    @abstractmethod
    def get_authorization_url(
        self, state: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> str:
        pass

    @abstractmethod
    async def exchange_code_for_tokens(
        self, code: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> TokenResponse:
        pass

    @abstractmethod
    async def refresh_access_token(
        self, refresh_token: str, workspace_id: str | None = None
    ) -> TokenResponse:
        pass

    @abstractmethod
    async def resolve_workspace(
        self, auth_context: AuthContext, workspace_hint: str | None = None
    ) -> WorkspaceInfo:
        pass

    @abstractmethod
    def list_parent_units(
        self, client: ApiClient, auth_context: AuthContext, connection: Connection
    ) -> AsyncGenerator[list[UnifiedParentUnit], None]:
        pass

    @abstractmethod
    def get_items_paginator(self, page_size: int) -> PaginationStrategy:
        pass

    @abstractmethod
    def build_items_request(
        self,
        connection: Connection,
        parent_unit: ParentUnit,
        since: datetime | None,
    ) -> RequestDefinition:
        pass

    @abstractmethod
    def build_item_request(
        self, connection: Connection, parent_unit: ParentUnit, item_id: str
    ) -> RequestDefinition:
        pass

    def extract_single_item(self, response: dict[str, Any]) -> dict[str, Any]:
        return response

    @abstractmethod
    def adapt_item(self, raw_item: dict[str, Any]) -> NormalizedItem:
        pass

    @abstractmethod
    def parse_webhook(self, payload: dict[str, Any]) -> list[WebhookEvent]:
        pass
