from connector_sync.integrations.core.rate_limiter import RateLimitConfig

TEAMS_PROVIDER_SLUG = "microsoft-teams"

TEAMS_AUTHORIZE_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize"
TEAMS_TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_ME_ENDPOINT = GRAPH_BASE_URL + "/me"
GRAPH_ORGANIZATION_ENDPOINT = GRAPH_BASE_URL + "/organization"
GRAPH_JOINED_TEAMS_ENDPOINT = GRAPH_BASE_URL + "/me/joinedTeams"
GRAPH_CHANNELS_ENDPOINT = GRAPH_BASE_URL + "/teams/{team_id}/channels"
GRAPH_MESSAGES_ENDPOINT = GRAPH_CHANNELS_ENDPOINT + "/{channel_id}/messages"
GRAPH_MESSAGE_ENDPOINT = GRAPH_MESSAGES_ENDPOINT + "/{message_id}"

TEAMS_SCOPES = [
    "offline_access",
    "User.Read",
    "Team.ReadBasic.All",
    "Channel.ReadBasic.All",
    "ChannelMessage.Read.All",
]

GRAPH_NEXT_LINK_KEY = "@odata.nextLink"
GRAPH_ITEMS_KEY = "value"

GRAPH_RESOURCE_PATTERN = (
    r"teams\('(?P<team_id>[^']+)'\)/channels\('(?P<channel_id>[^']+)'\)"
    r"/messages\('(?P<message_id>[^']+)'\)"
)

TEAMS_RATE_LIMITS = RateLimitConfig(requests_per_second=4.0, burst_size=10)
