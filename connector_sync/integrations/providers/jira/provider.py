import logging
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from connector_sync.constants.enums import EntityType, WebhookAction
from connector_sync.integrations.core.client import ApiClient
from connector_sync.integrations.core.exceptions import AuthError, ConfigurationError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.oauth import post_token_request
from connector_sync.integrations.core.pagination import PaginationStrategy
from connector_sync.integrations.core.rate_limiter import rate_limiter_registry
from connector_sync.integrations.core.types import (
    AuthContext,
    HttpMethod,
    IssueItem,
    RequestDefinition,
    TokenResponse,
    UnifiedParentUnit,
    WebhookEvent,
    WorkspaceInfo,
)
from connector_sync.integrations.providers.jira.adapters import (
    adapt_jira_issue,
    adapt_jira_projects,
)
from connector_sync.integrations.providers.jira.constants import (
    JIRA_ACCESSIBLE_RESOURCES_URL,
    JIRA_AUTHORIZE_URL,
    JIRA_ISSUE_ENDPOINT,
    JIRA_JQL_DATE_FORMAT,
    JIRA_PROJECTS_ENDPOINT,
    JIRA_PROVIDER_SLUG,
    JIRA_RATE_LIMITS,
    JIRA_SCOPES,
    JIRA_SEARCH_ENDPOINT,
    JIRA_TOKEN_URL,
    JIRA_USER_INFO_URL,
    JIRA_WEBHOOK_DELETE_EVENTS,
    JIRA_WEBHOOK_UPSERT_EVENTS,
)
from connector_sync.integrations.providers.jira.paginators import (
    JiraIssuesPaginator,
    JiraProjectsPaginator,
)
from connector_sync.models.connection import Connection
from connector_sync.models.parent_unit import ParentUnit

logger = logging.getLogger(__name__)


class JiraProvider(IConnectorProvider):
    def __init__(self, client_id: str, client_secret: str, timeout: float = 30.0):
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout

    @property
    def provider_slug(self) -> str:
        return JIRA_PROVIDER_SLUG

    @property
    def entity_type(self) -> EntityType:
        return EntityType.ISSUE

    def create_api_client(self) -> ApiClient:
        limiter = rate_limiter_registry.get_limiter(
            JIRA_PROVIDER_SLUG, "rest", JIRA_RATE_LIMITS
        )
        return ApiClient(rate_limiter=limiter, timeout=self._timeout)

    def get_authorization_url(
        self, state: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> str:
        params = {
            "audience": "api.atlassian.com",
            "client_id": self._client_id,
            "scope": " ".join(JIRA_SCOPES),
            "redirect_uri": redirect_uri,
            "state": state,
            "response_type": "code",
            "prompt": "consent",
        }
        return f"{JIRA_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(
        self, code: str, redirect_uri: str, workspace_hint: str | None = None
    ) -> TokenResponse:
        return await post_token_request(
            JIRA_TOKEN_URL,
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            as_json=True,
            timeout=self._timeout,
        )

    async def refresh_access_token(
        self, refresh_token: str, workspace_id: str | None = None
    ) -> TokenResponse:
        return await post_token_request(
            JIRA_TOKEN_URL,
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
            },
            as_json=True,
            timeout=self._timeout,
        )

    async def resolve_workspace(
        self, auth_context: AuthContext, workspace_hint: str | None = None
    ) -> WorkspaceInfo:
        async with self.create_api_client() as client:
            resources_response = await client.execute(
                RequestDefinition(HttpMethod.GET, JIRA_ACCESSIBLE_RESOURCES_URL),
                auth_context,
            )
            resources = resources_response.data.get("items") or []
            if not resources:
                raise AuthError("No accessible Jira resources found for this account")

            resource = resources[0]
            if workspace_hint:
                resource = next(
                    (
                        r
                        for r in resources
                        if workspace_hint in (r.get("id"), r.get("url"), r.get("name"))
                    ),
                    resource,
                )

            user_response = await client.execute(
                RequestDefinition(HttpMethod.GET, JIRA_USER_INFO_URL), auth_context
            )
            user = user_response.data

        return WorkspaceInfo(
            workspace_id=resource["id"],
            name=resource.get("name"),
            url=resource.get("url"),
            account_id=user.get("account_id"),
            account_name=user.get("name"),
            account_email=user.get("email"),
        )

    async def list_parent_units(
        self, client: ApiClient, auth_context: AuthContext, connection: Connection
    ) -> AsyncGenerator[list[UnifiedParentUnit], None]:
        request = RequestDefinition(
            method=HttpMethod.GET,
            url=JIRA_PROJECTS_ENDPOINT.format(cloud_id=self._cloud_id(connection)),
        )
        async for raw_projects in client.execute_paginated(
            request, auth_context, JiraProjectsPaginator()
        ):
            yield adapt_jira_projects(raw_projects)

    def get_items_paginator(self, page_size: int) -> PaginationStrategy:
        return JiraIssuesPaginator(page_size)

    def build_items_request(
        self,
        connection: Connection,
        parent_unit: ParentUnit,
        since: datetime | None,
    ) -> RequestDefinition:
        return RequestDefinition(
            method=HttpMethod.GET,
            url=JIRA_SEARCH_ENDPOINT.format(cloud_id=self._cloud_id(connection)),
            params={
                "jql": build_issue_jql(parent_unit.key, since),
                "fields": "*all",
                "expand": "changelog",
            },
        )

    def build_item_request(
        self, connection: Connection, parent_unit: ParentUnit, item_id: str
    ) -> RequestDefinition:
        return RequestDefinition(
            method=HttpMethod.GET,
            url=JIRA_ISSUE_ENDPOINT.format(
                cloud_id=self._cloud_id(connection), issue_id=item_id
            ),
            params={"expand": "changelog"},
        )

    def adapt_item(self, raw_item: dict[str, Any]) -> IssueItem:
        return adapt_jira_issue(raw_item)

    def parse_webhook(self, payload: dict[str, Any]) -> list[WebhookEvent]:
        event_type = payload.get("webhookEvent", "")
        if event_type in JIRA_WEBHOOK_UPSERT_EVENTS:
            action = WebhookAction.UPSERT
        elif event_type in JIRA_WEBHOOK_DELETE_EVENTS:
            action = WebhookAction.DELETE
        else:
            logger.debug(f"Ignoring Jira webhook event: {event_type}")
            return []

        issue = payload.get("issue") or {}
        issue_key = issue.get("key")
        if not issue_key:
            logger.warning(f"Jira webhook {event_type} has no issue key")
            return []

        project = (issue.get("fields") or {}).get("project") or {}
        return [
            WebhookEvent(
                action=action,
                parent_key=project.get("key") or issue_key.split("-")[0],
                item_id=str(issue.get("id") or issue_key),
                event_type=event_type,
                raw_data=payload,
            )
        ]

    def _cloud_id(self, connection: Connection) -> str:
        if not connection.workspace_id:
            raise ConfigurationError(
                f"Jira connection {connection.id} has no cloud id"
            )
        return connection.workspace_id


def build_issue_jql(project_key: str, since: datetime | None) -> str:
    clauses = [f'project = "{project_key}"']
    if since is not None:
        since_utc = since.astimezone(timezone.utc)
        clauses.append(f'updated >= "{since_utc.strftime(JIRA_JQL_DATE_FORMAT)}"')
    return " AND ".join(clauses) + " ORDER BY updated DESC"
