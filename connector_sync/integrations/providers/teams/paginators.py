from connector_sync.integrations.core.pagination import NextLinkPagination, NoPagination
from connector_sync.integrations.providers.teams.constants import (
    GRAPH_ITEMS_KEY,
    GRAPH_NEXT_LINK_KEY,
)


class GraphCollectionPaginator(NextLinkPagination):
    def __init__(self, page_size: int | None = None):
        super().__init__(
            next_link_key=GRAPH_NEXT_LINK_KEY,
            items_key=GRAPH_ITEMS_KEY,
            page_size_param="$top" if page_size else None,
            default_page_size=page_size or 50,
        )


class GraphChannelsPaginator(NoPagination):
    def __init__(self):
        super().__init__(items_key=GRAPH_ITEMS_KEY)
