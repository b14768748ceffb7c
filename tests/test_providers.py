from datetime import datetime, timezone

import pytest

from connector_sync.constants.enums import WebhookAction
from connector_sync.core.exceptions import ValidationException
from connector_sync.integrations.core.types import IncidentItem, IssueItem, MessageItem
from connector_sync.integrations.providers.jira import JiraProvider, build_issue_jql
from connector_sync.integrations.providers.jira.adapters import adf_to_text
from connector_sync.integrations.providers.servicenow import (
    ServiceNowProvider,
    normalize_instance_url,
)
from connector_sync.integrations.providers.servicenow.adapters import field_value
from connector_sync.integrations.providers.teams import TeamsProvider
from tests.conftest import make_connection, make_parent_unit


@pytest.fixture
def jira() -> JiraProvider:
    return JiraProvider(client_id="jira-id", client_secret="jira-secret")


@pytest.fixture
def teams() -> TeamsProvider:
    return TeamsProvider(client_id="teams-id", client_secret="teams-secret")


@pytest.fixture
def servicenow() -> ServiceNowProvider:
    return ServiceNowProvider(
        client_id="sn-id", client_secret="sn-secret", tables=["incident", "problem"]
    )


JIRA_ISSUE = {
    "id": "10001",
    "key": "PROJ-1",
    "fields": {
        "summary": "Login fails",
        "status": {"name": "In Progress"},
        "issuetype": {"name": "Bug"},
        "priority": {"name": "High"},
        "created": "2024-03-01T10:00:00.000+0000",
        "updated": "2024-03-02T12:30:00.000+0000",
        "assignee": {"displayName": "Ada"},
        "labels": ["auth"],
        "description": {
            "type": "doc",
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "Steps"}]},
                {"type": "paragraph", "content": [{"type": "text", "text": "to reproduce"}]},
            ],
        },
        "customfield_10010": "sprint-4",
        "customfield_10011": None,
        "comment": {"comments": [{"id": "c1", "body": "plain", "author": {"displayName": "Bo"}}]},
        "attachment": [{"id": "a1", "filename": "log.txt", "size": 12}],
    },
    "changelog": {
        "histories": [
            {
                "id": "h1",
                "created": "2024-03-02T12:30:00.000+0000",
                "items": [{"field": "status", "fromString": "Open", "toString": "In Progress"}],
            }
        ]
    },
}


class TestJiraProvider:
    def test_adapt_issue(self, jira):
        item = jira.adapt_item(JIRA_ISSUE)

        assert isinstance(item, IssueItem)
        assert item.external_id == "10001"
        assert item.external_key == "PROJ-1"
        assert item.title == "Login fails"
        assert item.status == "In Progress"
        assert item.item_type == "Bug"
        assert item.description == "Steps\nto reproduce"
        assert item.custom_fields == {"customfield_10010": "sprint-4"}
        assert item.comments[0]["author"] == "Bo"
        assert item.attachments[0]["filename"] == "log.txt"
        assert item.history[0]["items"][0]["to"] == "In Progress"
        assert item.remote_updated_at == datetime(2024, 3, 2, 12, 30, tzinfo=timezone.utc)

    def test_adapt_issue_without_id_is_rejected(self, jira):
        with pytest.raises(ValueError):
            jira.adapt_item({"key": "PROJ-2", "fields": {}})

    def test_adf_to_text_passes_strings_through(self):
        assert adf_to_text("already text") == "already text"
        assert adf_to_text(None) is None

    def test_full_jql_has_no_time_filter(self):
        assert build_issue_jql("PROJ", None) == 'project = "PROJ" ORDER BY updated DESC'

    def test_incremental_jql_filters_on_updated(self):
        since = datetime(2024, 3, 2, 12, 30, 45, tzinfo=timezone.utc)
        assert build_issue_jql("PROJ", since) == (
            'project = "PROJ" AND updated >= "2024-03-02 12:30" ORDER BY updated DESC'
        )

    def test_items_request_targets_cloud_search(self, jira):
        connection = make_connection(provider_slug="jira", workspace_id="cloud-1")
        request = jira.build_items_request(connection, make_parent_unit(key="PROJ"), None)
        assert request.url == "https://api.atlassian.com/ex/jira/cloud-1/rest/api/3/search"
        assert request.params["jql"].startswith('project = "PROJ"')

    @pytest.mark.parametrize(
        "event_type, action",
        [
            ("jira:issue_created", WebhookAction.UPSERT),
            ("jira:issue_updated", WebhookAction.UPSERT),
            ("jira:issue_deleted", WebhookAction.DELETE),
        ],
    )
    def test_parse_webhook(self, jira, event_type, action):
        events = jira.parse_webhook({"webhookEvent": event_type, "issue": {"id": "10001", "key": "PROJ-1"}})

        assert len(events) == 1
        assert events[0].action == action
        assert events[0].parent_key == "PROJ"
        assert events[0].item_id == "10001"

    def test_parse_webhook_ignores_other_events(self, jira):
        assert jira.parse_webhook({"webhookEvent": "comment_created"}) == []


class TestTeamsProvider:
    def test_adapt_message(self, teams):
        item = teams.adapt_item(
            {
                "id": "m1",
                "messageType": "message",
                "createdDateTime": "2024-03-01T10:00:00Z",
                "lastModifiedDateTime": "2024-03-01T11:00:00Z",
                "body": {"contentType": "html", "content": "<p>Deploy done</p>"},
                "from": {"user": {"id": "u1", "displayName": "Ada"}},
                "attachments": [{"id": "f1", "name": "notes.docx"}],
            }
        )

        assert isinstance(item, MessageItem)
        assert item.external_id == "m1"
        assert item.title == "Deploy done"
        assert item.status == "active"
        assert item.author == "Ada"
        assert item.attachments[0]["name"] == "notes.docx"

    def test_deleted_message_status(self, teams):
        item = teams.adapt_item({"id": "m2", "deletedDateTime": "2024-03-01T10:00:00Z"})
        assert item.status == "deleted"

    def test_incremental_request_filters_on_last_modified(self, teams):
        unit = make_parent_unit(external_id="chan-1", key="chan-1", metadata={"team_id": "team-1"})
        since = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        request = teams.build_items_request(make_connection(), unit, since)

        assert request.url.endswith("/teams/team-1/channels/chan-1/messages")
        assert request.params["$filter"] == "lastModifiedDateTime gt 2024-03-01T10:00:00Z"

    def test_parse_change_notifications(self, teams):
        payload = {
            "value": [
                {
                    "changeType": "created",
                    "resource": "teams('team-1')/channels('chan-1')/messages('m1')",
                },
                {
                    "changeType": "deleted",
                    "resource": "teams('team-1')/channels('chan-1')/messages('m2')",
                },
                {"changeType": "updated", "resource": "users('u1')"},
            ]
        }
        events = teams.parse_webhook(payload)

        assert [(e.action, e.parent_key, e.item_id) for e in events] == [
            (WebhookAction.UPSERT, "chan-1", "m1"),
            (WebhookAction.DELETE, "chan-1", "m2"),
        ]


class TestServiceNowProvider:
    RECORD = {
        "sys_id": {"value": "abc123", "display_value": "abc123"},
        "number": {"value": "INC0010001", "display_value": "INC0010001"},
        "short_description": {"value": "Email down", "display_value": "Email down"},
        "state": {"value": "2", "display_value": "In Progress"},
        "priority": {"value": "1", "display_value": "1 - Critical"},
        "sys_class_name": {"value": "incident", "display_value": "Incident"},
        "sys_updated_on": {"value": "2024-03-02 12:30:00", "display_value": "03/02/2024"},
        "assigned_to": {"value": "", "display_value": ""},
    }

    def test_adapt_record(self, servicenow):
        item = servicenow.adapt_item(self.RECORD)

        assert isinstance(item, IncidentItem)
        assert item.external_id == "abc123"
        assert item.external_key == "INC0010001"
        assert item.status == "In Progress"
        assert item.priority == "1 - Critical"
        assert item.assigned_to is None
        assert item.remote_updated_at == datetime(2024, 3, 2, 12, 30, tzinfo=timezone.utc)

    def test_field_value_plain_and_empty(self):
        assert field_value({"a": "x"}, "a") == "x"
        assert field_value({"a": ""}, "a") is None
        assert field_value({}, "a") is None

    def test_normalize_instance_url(self):
        assert normalize_instance_url("acme.service-now.com") == "https://acme.service-now.com"
        assert normalize_instance_url("https://acme.service-now.com/nav") == "https://acme.service-now.com"
        with pytest.raises(ValidationException):
            normalize_instance_url(None)

    def test_incremental_query(self, servicenow):
        connection = make_connection(
            provider_slug="servicenow", workspace_id="https://acme.service-now.com"
        )
        since = datetime(2024, 3, 2, 12, 30, tzinfo=timezone.utc)
        request = servicenow.build_items_request(
            connection, make_parent_unit(key="incident", external_id="incident"), since
        )

        assert request.url == "https://acme.service-now.com/api/now/table/incident"
        assert request.params["sysparm_query"] == (
            "sys_updated_on>2024-03-02 12:30:00^ORDERBYsys_updated_on"
        )
        assert request.params["sysparm_display_value"] == "all"

    def test_single_record_is_unwrapped(self, servicenow):
        assert servicenow.extract_single_item({"result": {"sys_id": "x"}}) == {"sys_id": "x"}

    @pytest.mark.asyncio
    async def test_parent_units_are_configured_tables(self, servicenow):
        batches = [
            batch
            async for batch in servicenow.list_parent_units(None, None, make_connection())
        ]
        assert [unit.key for unit in batches[0]] == ["incident", "problem"]

    def test_parse_webhook(self, servicenow):
        events = servicenow.parse_webhook(
            {"table": "incident", "sys_id": "abc123", "operation": "DELETE"}
        )
        assert events[0].action == WebhookAction.DELETE
        assert events[0].parent_key == "incident"
        assert servicenow.parse_webhook({"table": "incident", "operation": "query"}) == []
