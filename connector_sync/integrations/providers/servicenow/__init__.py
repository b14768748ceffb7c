from connector_sync.integrations.providers.servicenow.constants import (
    SERVICENOW_PROVIDER_SLUG,
)
from connector_sync.integrations.providers.servicenow.provider import (
    ServiceNowProvider,
    normalize_instance_url,
)

__all__ = [
    "SERVICENOW_PROVIDER_SLUG",
    "ServiceNowProvider",
    "normalize_instance_url",
]
