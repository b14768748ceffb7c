from connector_sync.core.settings import settings
from connector_sync.integrations.core.exceptions import ProviderNotFoundError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.providers.jira import JiraProvider
from connector_sync.integrations.providers.servicenow import ServiceNowProvider
from connector_sync.integrations.providers.teams import TeamsProvider

_PROVIDERS: dict[str, IConnectorProvider] = {
    provider.provider_slug: provider
    for provider in (
        JiraProvider(
            client_id=settings.jira_client_id,
            client_secret=settings.jira_client_secret,
            timeout=settings.http_timeout_seconds,
        ),
        TeamsProvider(
            client_id=settings.teams_client_id,
            client_secret=settings.teams_client_secret,
            authority_tenant=settings.teams_authority_tenant,
            timeout=settings.http_timeout_seconds,
        ),
        ServiceNowProvider(
            client_id=settings.servicenow_client_id,
            client_secret=settings.servicenow_client_secret,
            tables=settings.servicenow_table_list,
            timeout=settings.http_timeout_seconds,
        ),
    )
}


def get_provider_by_slug(slug: str) -> IConnectorProvider | None:
    return _PROVIDERS.get(slug)


def require_provider(slug: str) -> IConnectorProvider:
    provider = get_provider_by_slug(slug)
    if provider is None:
        raise ProviderNotFoundError(slug)
    return provider


def supported_provider_slugs() -> list[str]:
    return sorted(_PROVIDERS)
