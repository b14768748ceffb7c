from connector_sync.integrations.core.rate_limiter import RateLimitConfig

SERVICENOW_PROVIDER_SLUG = "servicenow"

SERVICENOW_AUTHORIZE_PATH = "/oauth_auth.do"
SERVICENOW_TOKEN_PATH = "/oauth_token.do"
SERVICENOW_TABLE_PATH = "/api/now/table/{table}"
SERVICENOW_RECORD_PATH = SERVICENOW_TABLE_PATH + "/{sys_id}"

SERVICENOW_SCOPES = ["useraccount"]

SERVICENOW_ITEMS_KEY = "result"
SERVICENOW_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SERVICENOW_WEBHOOK_UPSERT_OPERATIONS = frozenset({"insert", "update"})
SERVICENOW_WEBHOOK_DELETE_OPERATIONS = frozenset({"delete"})

SERVICENOW_RATE_LIMITS = RateLimitConfig(requests_per_second=5.0, burst_size=10)
