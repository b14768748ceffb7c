from connector_sync.integrations.core.pagination import NextLinkPagination, OffsetPagination
from connector_sync.integrations.core.types import HttpMethod, RequestDefinition
from connector_sync.integrations.providers.jira.paginators import (
    JiraIssuesPaginator,
    JiraProjectsPaginator,
)
from connector_sync.integrations.providers.servicenow.paginators import (
    ServiceNowTablePaginator,
)
from connector_sync.integrations.providers.teams.paginators import GraphCollectionPaginator


def _request(**params) -> RequestDefinition:
    return RequestDefinition(HttpMethod.GET, "https://vendor.test/items", params=params)


class TestOffsetPagination:
    def setup_method(self):
        self.paginator = OffsetPagination(
            offset_param="startAt",
            limit_param="maxResults",
            items_key="issues",
            total_key="total",
            is_last_key="isLast",
            default_limit=2,
        )

    def test_first_request_seeds_offset_and_limit(self):
        request = self.paginator.first_request(_request(jql="project = X"))
        assert request.params == {"startAt": 0, "maxResults": 2, "jql": "project = X"}

    def test_full_page_advances_offset(self):
        request = self.paginator.first_request(_request())
        next_request = self.paginator.next_request(request, {"issues": [1, 2]})
        assert next_request is not None
        assert next_request.params["startAt"] == 2
        assert next_request.url == request.url

    def test_short_page_stops(self):
        request = self.paginator.first_request(_request())
        assert self.paginator.next_request(request, {"issues": [1]}) is None

    def test_empty_page_stops(self):
        request = self.paginator.first_request(_request())
        assert self.paginator.next_request(request, {"issues": []}) is None

    def test_total_reached_stops_on_full_page(self):
        request = self.paginator.first_request(_request())
        assert self.paginator.next_request(request, {"issues": [1, 2], "total": 2}) is None

    def test_is_last_stops_on_full_page(self):
        request = self.paginator.first_request(_request())
        assert (
            self.paginator.next_request(request, {"issues": [1, 2], "isLast": True})
            is None
        )

    def test_total_not_reached_continues(self):
        request = self.paginator.first_request(_request())
        next_request = self.paginator.next_request(
            request, {"issues": [1, 2], "total": 5}
        )
        assert next_request.params["startAt"] == 2


class TestNextLinkPagination:
    def setup_method(self):
        self.paginator = NextLinkPagination(
            next_link_key="@odata.nextLink",
            items_key="value",
            page_size_param="$top",
            default_page_size=50,
        )

    def test_first_request_sets_page_size(self):
        request = self.paginator.first_request(_request())
        assert request.params == {"$top": 50}

    def test_follows_link_even_on_short_page(self):
        request = self.paginator.first_request(_request())
        link = "https://vendor.test/items?$skiptoken=abc"
        next_request = self.paginator.next_request(
            request, {"value": [1], "@odata.nextLink": link}
        )
        assert next_request.url == link
        assert next_request.params == {}

    def test_stops_without_link(self):
        request = self.paginator.first_request(_request())
        assert self.paginator.next_request(request, {"value": [1, 2]}) is None

    def test_stops_on_empty_page_with_link(self):
        request = self.paginator.first_request(_request())
        response = {"value": [], "@odata.nextLink": "https://vendor.test/next"}
        assert self.paginator.next_request(request, response) is None


class TestVendorPaginators:
    def test_jira_projects_use_values_and_is_last(self):
        paginator = JiraProjectsPaginator()
        request = paginator.first_request(_request())
        response = {"values": [{"id": "1"}] * request.params["maxResults"], "isLast": True}
        assert paginator.extract_items(response)
        assert paginator.next_request(request, response) is None

    def test_jira_issues_page_size(self):
        paginator = JiraIssuesPaginator(25)
        request = paginator.first_request(_request())
        assert request.params["maxResults"] == 25
        assert paginator.extract_items({"issues": [{"id": "1"}]}) == [{"id": "1"}]

    def test_servicenow_offsets(self):
        paginator = ServiceNowTablePaginator(2)
        request = paginator.first_request(_request(sysparm_query="ORDERBYsys_updated_on"))
        next_request = paginator.next_request(request, {"result": [{}, {}]})
        assert next_request.params["sysparm_offset"] == 2
        assert next_request.params["sysparm_query"] == "ORDERBYsys_updated_on"

    def test_graph_collection(self):
        paginator = GraphCollectionPaginator(20)
        request = paginator.first_request(_request())
        assert request.params == {"$top": 20}
        assert paginator.next_request(request, {"value": [{"id": "m1"}]}) is None
