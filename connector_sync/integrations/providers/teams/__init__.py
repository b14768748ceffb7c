from connector_sync.integrations.providers.teams.constants import TEAMS_PROVIDER_SLUG
from connector_sync.integrations.providers.teams.provider import TeamsProvider

__all__ = [
    "TEAMS_PROVIDER_SLUG",
    "TeamsProvider",
]
