from connector_sync.integrations.core.pagination import OffsetPagination
from connector_sync.integrations.providers.jira.constants import JIRA_PROJECTS_PAGE_SIZE


class JiraProjectsPaginator(OffsetPagination):
    def __init__(self):
        super().__init__(
            offset_param="startAt",
            limit_param="maxResults",
            items_key="values",
            total_key="total",
            is_last_key="isLast",
            default_limit=JIRA_PROJECTS_PAGE_SIZE,
        )


class JiraIssuesPaginator(OffsetPagination):
    def __init__(self, page_size: int):
        super().__init__(
            offset_param="startAt",
            limit_param="maxResults",
            items_key="issues",
            total_key="total",
            default_limit=page_size,
        )
