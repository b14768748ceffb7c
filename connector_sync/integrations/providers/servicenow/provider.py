import logging
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode, urlparse

from connector_sync.constants.enums import EntityType, WebhookAction
from connector_sync.core.exceptions import ValidationException
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.oauth import post_token_request
from connector_sync.integrations.core.pagination import PaginationStrategy
from connector_sync.integrations.core.rate_limiter import rate_limiter_registry
from connector_sync.integrations.core.types import (
    AuthContext,
    HttpMethod,
    IncidentItem,
    RequestDefinition,
    TokenResponse,
    UnifiedParentUnit,
    WebhookEvent,
    WorkspaceInfo,
)
from connector_sync.integrations.providers.servicenow.adapters import (
    adapt_servicenow_record,
)
from connector_sync.integrations.providers.servicenow.constants import (
    SERVICENOW_AUTHORIZE_PATH,
    SERVICENOW_DATE_FORMAT,
    SERVICENOW_ITEMS_KEY,
    SERVICENOW_PROVIDER_SLUG,
    SERVICENOW_RATE_LIMITS,
    SERVICENOW_RECORD_PATH,
    SERVICENOW_SCOPES,
    SERVICENOW_TABLE_PATH,
    SERVICENOW_TOKEN_PATH,
    SERVICENOW_WEBHOOK_DELETE_OPERATIONS,
    SERVICENOW_WEBHOOK_UPSERT_OPERATIONS,
)
from connector_sync.integrations.providers.servicenow.paginators import (
    ServiceNowTablePaginator,
)
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit

logger = logging.getLogger(__name__)

_COMMON_PARAMS = {
    "sysparm_display_value": "all",
    "sysparm_exclude_reference_link": "true",
}


def normalize_instance_url(instance_url: str | None) -> str:
    if not instance_url:
        raise ValidationException(
            "INSTANCE_URL_REQUIRED", "A ServiceNow instance URL is required"
        )
    parsed = urlparse(instance_url if "://" in instance_url else f"https://{instance_url}")
    if not parsed.netloc:
        raise ValidationException(
            "INVALID_INSTANCE_URL", f"Invalid ServiceNow instance URL: {instance_url}"
        )
    return f"https://{parsed.netloc}"


class ServiceNowProvider(IConnectorProvider):
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        tables: list[str],
        timeout: float = 30.0,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._tables = tables
        self._timeout = timeout

    @property
    def provider_slug(self) -> str:
        return SERVICENOW_PROVIDER_SLUG

    @property
    def entity_type(self) -> EntityType:
        return EntityType.INCIDENT

    def create_api_client(self) -> ApiClient:
        limiter = rate_limiter_registry.get_limiter(
            SERVICENOW_PROVIDER_SLUG, "table", SERVICENOW_RATE_LIMITS
        )
        return ApiClient(rate_limiter=limiter, timeout=self._timeout)

    def get_authorization_url(
        self, state: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(SERVICENOW_SCOPES),
            "state": state,
        }
        instance = normalize_instance_url(workspace_hint)
        return f"{instance}{SERVICENOW_AUTHORIZE_PATH}?{urlencode(params)}"

    async def exchange_code_for_tokens(
        self, code: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> TokenResponse:
        instance = normalize_instance_url(workspace_hint)
        return await post_token_request(
            f"{instance}{SERVICENOW_TOKEN_PATH}",
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            timeout=self._timeout,
        )

    async def refresh_access_token(
        self, refresh_token: str, workspace_id: str | None = None
    ) -> TokenResponse:
        instance = normalize_instance_url(workspace_id)
        return await post_token_request(
            f"{instance}{SERVICENOW_TOKEN_PATH}",
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
            },
            timeout=self._timeout,
        )

    async def resolve_workspace(
        self, auth_context: AuthContext, workspace_hint: str | None = None
    ) -> WorkspaceInfo:
        instance = normalize_instance_url(workspace_hint)
        return WorkspaceInfo(
            workspace_id=instance,
            name=urlparse(instance).netloc.split(".")[0],
            url=instance,
        )

    async def list_parent_units(
        self, client: ApiClient, auth_context: AuthContext, connection: Connection
    ) -> AsyncGenerator[list[UnifiedParentUnit], None]:
        # tables are configured, not discovered
        yield [
            UnifiedParentUnit(external_id=table, key=table, name=table)
            for table in self._tables
        ]

    def get_items_paginator(self, page_size: int) -> PaginationStrategy:
        return ServiceNowTablePaginator(page_size)

    def build_items_request(
        self,
        connection: Connection,
        parent_unit: ParentUnit,
        since: datetime | None,
    ) -> RequestDefinition:
        query = "ORDERBYsys_updated_on"
        if since is not None:
            since_utc = since.astimezone(timezone.utc)
            query = f"sys_updated_on>{since_utc.strftime(SERVICENOW_DATE_FORMAT)}^{query}"
        instance = normalize_instance_url(connection.workspace_id)
        return RequestDefinition(
            method=HttpMethod.GET,
            url=instance + SERVICENOW_TABLE_PATH.format(table=parent_unit.key),
            params={"sysparm_query": query, **_COMMON_PARAMS},
        )

    def build_item_request(
        self, connection: Connection, parent_unit: ParentUnit, item_id: str
    ) -> RequestDefinition:
        instance = normalize_instance_url(connection.workspace_id)
        return RequestDefinition(
            method=HttpMethod.GET,
            url=instance
            + SERVICENOW_RECORD_PATH.format(table=parent_unit.key, sys_id=item_id),
            params=dict(_COMMON_PARAMS),
        )

    def extract_single_item(self, response: dict[str, Any]) -> dict[str, Any]:
        return response.get(SERVICENOW_ITEMS_KEY) or {}

    def adapt_item(self, raw_item: dict[str, Any]) -> IncidentItem:
        return adapt_servicenow_record(raw_item)

    def parse_webhook(self, payload: dict[str, Any]) -> list[WebhookEvent]:
        operation = (payload.get("operation") or "").lower()
        if operation in SERVICENOW_WEBHOOK_UPSERT_OPERATIONS:
            action = WebhookAction.UPSERT
        elif operation in SERVICENOW_WEBHOOK_DELETE_OPERATIONS:
            action = WebhookAction.DELETE
        else:
            logger.debug(f"Ignoring ServiceNow webhook operation: {operation}")
            return []

        table = payload.get("table")
        sys_id = payload.get("sys_id")
        if not table or not sys_id:
            logger.warning("ServiceNow webhook missing table or sys_id")
            return []

        return [
            WebhookEvent(
                action=action,
                parent_key=table,
                item_id=sys_id,
                event_type=f"servicenow:{table}_{operation}",
                raw_data=payload,
            )
        ]
