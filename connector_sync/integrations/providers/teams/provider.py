import logging
import re
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from connector_sync.constants.enums import EntityType, WebhookAction
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.exceptions import ConfigurationError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.oauth import post_token_request
from connector_sync.integrations.core.pagination import PaginationStrategy
from connector_sync.integrations.core.rate_limiter import rate_limiter_registry
from connector_sync.integrations.core.types import (
    AuthContext,
    HttpMethod,
    MessageItem,
    RequestDefinition,
    TokenResponse,
    UnifiedParentUnit,
    WebhookEvent,
    WorkspaceInfo,
)
from connector_sync.integrations.providers.teams.adapters import (
    adapt_teams_channel,
    adapt_teams_message,
)
from connector_sync.integrations.providers.teams.constants import (
    GRAPH_CHANNELS_ENDPOINT,
    GRAPH_JOINED_TEAMS_ENDPOINT,
    GRAPH_ME_ENDPOINT,
    GRAPH_MESSAGE_ENDPOINT,
    GRAPH_MESSAGES_ENDPOINT,
    GRAPH_ORGANIZATION_ENDPOINT,
    GRAPH_RESOURCE_PATTERN,
    TEAMS_AUTHORIZE_URL,
    TEAMS_PROVIDER_SLUG,
    TEAMS_RATE_LIMITS,
    TEAMS_SCOPES,
    TEAMS_TOKEN_URL,
)
from connector_sync.integrations.providers.teams.paginators import (
    GraphChannelsPaginator,
    GraphCollectionPaginator,
)
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit

logger = logging.getLogger(__name__)

_resource_pattern = re.compile(GRAPH_RESOURCE_PATTERN)


class TeamsProvider(IConnectorProvider):
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authority_tenant: str = "common",
        timeout: float = 30.0,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._authority_tenant = authority_tenant
        self._timeout = timeout

    @property
    def provider_slug(self) -> str:
        return TEAMS_PROVIDER_SLUG

    @property
    def entity_type(self) -> EntityType:
        return EntityType.MESSAGE

    def create_api_client(self) -> ApiClient:
        limiter = rate_limiter_registry.get_limiter(
            TEAMS_PROVIDER_SLUG, "graph", TEAMS_RATE_LIMITS
        )
        return ApiClient(rate_limiter=limiter, timeout=self._timeout)

    def get_authorization_url(
        self, state: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> str:
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "response_mode": "query",
            "scope": " ".join(TEAMS_SCOPES),
            "state": state,
        }
        authorize_url = TEAMS_AUTHORIZE_URL.format(tenant=self._authority_tenant)
        return f"{authorize_url}?{urlencode(params)}"

    async def exchange_code_for_tokens(
        self, code: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> TokenResponse:
        return await post_token_request(
            TEAMS_TOKEN_URL.format(tenant=self._authority_tenant),
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
                "scope": " ".join(TEAMS_SCOPES),
            },
            timeout=self._timeout,
        )

    async def refresh_access_token(
        self, refresh_token: str, workspace_id: str | None = None
    ) -> TokenResponse:
        return await post_token_request(
            TEAMS_TOKEN_URL.format(tenant=workspace_id or self._authority_tenant),
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
                "scope": " ".join(TEAMS_SCOPES),
            },
            timeout=self._timeout,
        )

    async def resolve_workspace(
        self, auth_context: AuthContext, workspace_hint: str | None = None
    ) -> WorkspaceInfo:
        async with self.create_api_client() as client:
            organization = await client.execute(
                RequestDefinition(HttpMethod.GET, GRAPH_ORGANIZATION_ENDPOINT),
                auth_context,
            )
            me = await client.execute(
                RequestDefinition(HttpMethod.GET, GRAPH_ME_ENDPOINT), auth_context
            )

        orgs = organization.data.get("value") or []
        if not orgs:
            raise ConfigurationError("Microsoft Graph returned no organization")
        org = orgs[0]
        user = me.data
        return WorkspaceInfo(
            workspace_id=org["id"],
            name=org.get("displayName"),
            account_id=user.get("id"),
            account_name=user.get("displayName"),
            account_email=user.get("mail") or user.get("userPrincipalName"),
        )

    async def list_parent_units(
        self, client: ApiClient, auth_context: AuthContext, connection: Connection
    ) -> AsyncGenerator[list[UnifiedParentUnit], None]:
        teams_request = RequestDefinition(HttpMethod.GET, GRAPH_JOINED_TEAMS_ENDPOINT)
        async for teams in client.execute_paginated(
            teams_request, auth_context, GraphCollectionPaginator()
        ):
            for team in teams:
                channels_request = RequestDefinition(
                    HttpMethod.GET, GRAPH_CHANNELS_ENDPOINT.format(team_id=team["id"])
                )
                units: list[UnifiedParentUnit] = []
                async for channels in client.execute_paginated(
                    channels_request, auth_context, GraphChannelsPaginator()
                ):
                    units.extend(
                        adapt_teams_channel(channel, team)
                        for channel in channels
                        if channel.get("id")
                    )
                if units:
                    yield units

    def get_items_paginator(self, page_size: int) -> PaginationStrategy:
        return GraphCollectionPaginator(page_size)

    def build_items_request(
        self,
        connection: Connection,
        parent_unit: ParentUnit,
        since: datetime | None,
    ) -> RequestDefinition:
        params: dict[str, Any] = {}
        if since is not None:
            since_iso = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            params["$filter"] = f"lastModifiedDateTime gt {since_iso}"
        return RequestDefinition(
            method=HttpMethod.GET,
            url=GRAPH_MESSAGES_ENDPOINT.format(
                team_id=self._team_id(parent_unit), channel_id=parent_unit.external_id
            ),
            params=params,
        )

    def build_item_request(
        self, connection: Connection, parent_unit: ParentUnit, item_id: str
    ) -> RequestDefinition:
        return RequestDefinition(
            method=HttpMethod.GET,
            url=GRAPH_MESSAGE_ENDPOINT.format(
                team_id=self._team_id(parent_unit),
                channel_id=parent_unit.external_id,
                message_id=item_id,
            ),
        )

    def adapt_item(self, raw_item: dict[str, Any]) -> MessageItem:
        return adapt_teams_message(raw_item)

    def parse_webhook(self, payload: dict[str, Any]) -> list[WebhookEvent]:
        events: list[WebhookEvent] = []
        for notification in payload.get("value") or []:
            change_type = notification.get("changeType", "")
            match = _resource_pattern.search(notification.get("resource", ""))
            if not match:
                logger.debug(f"Ignoring Graph notification for {notification.get('resource')}")
                continue
            if change_type == "deleted":
                action = WebhookAction.DELETE
            elif change_type in ("created", "updated"):
                action = WebhookAction.UPSERT
            else:
                continue
            events.append(
                WebhookEvent(
                    action=action,
                    parent_key=match.group("channel_id"),
                    item_id=match.group("message_id"),
                    event_type=f"teams:message_{change_type}",
                    raw_data=notification,
                )
            )
        return events

    def _team_id(self, parent_unit: ParentUnit) -> str:
        team_id = parent_unit.metadata.get("team_id")
        if not team_id:
            raise ConfigurationError(f"Channel {parent_unit.key} has no team id")
        return team_id
