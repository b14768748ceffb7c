from connector_sync.integrations.providers.jira.constants import JIRA_PROVIDER_SLUG
from connector_sync.integrations.providers.jira.provider import (
    JiraProvider,
    build_issue_jql,
)

__all__ = [
    "JIRA_PROVIDER_SLUG",
    "JiraProvider",
    "build_issue_jql",
]
