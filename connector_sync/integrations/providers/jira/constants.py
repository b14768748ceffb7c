from connector_sync.integrations.core.rate_limiter import RateLimitConfig

JIRA_PROVIDER_SLUG = "jira"

JIRA_AUTHORIZE_URL = "https://auth.atlassian.com/authorize"
JIRA_TOKEN_URL = "https://auth.atlassian.com/oauth/token"
JIRA_ACCESSIBLE_RESOURCES_URL = (
    "https://api.atlassian.com/oauth/token/accessible-resources"
)
JIRA_USER_INFO_URL = "https://api.atlassian.com/me"

JIRA_API_BASE_URL = "https://api.atlassian.com/ex/jira/{cloud_id}/rest/api/3"
JIRA_PROJECTS_ENDPOINT = JIRA_API_BASE_URL + "/project/search"
JIRA_SEARCH_ENDPOINT = JIRA_API_BASE_URL + "/search"
JIRA_ISSUE_ENDPOINT = JIRA_API_BASE_URL + "/issue/{issue_id}"

JIRA_SCOPES = [
    "read:jira-work",
    "read:jira-user",
    "offline_access",
]

JIRA_PROJECTS_PAGE_SIZE = 50
JIRA_JQL_DATE_FORMAT = "%Y-%m-%d %H:%M"

JIRA_WEBHOOK_UPSERT_EVENTS = frozenset({"jira:issue_created", "jira:issue_updated"})
JIRA_WEBHOOK_DELETE_EVENTS = frozenset({"jira:issue_deleted"})

JIRA_RATE_LIMITS = RateLimitConfig(requests_per_second=10.0, burst_size=20)
