from connector_sync.integrations.core.pagination import OffsetPagination
from connector_sync.integrations.providers.servicenow.constants import (
    SERVICENOW_ITEMS_KEY,
)


class ServiceNowTablePaginator(OffsetPagination):
    def __init__(self, page_size: int):
        super().__init__(
            offset_param="sysparm_offset",
            limit_param="sysparm_limit",
            items_key=SERVICENOW_ITEMS_KEY,
            default_limit=page_size,
        )
