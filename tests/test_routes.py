import asyncio
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from connector_sync.constants.enums import SyncRunKind
from connector_sync.core.dependencies import (
    get_connection_service,
    get_sync_orchestrator,
    get_webhook_ingestor_scope,
)
from connector_sync.dtos.sync_run_dtos import CreateSyncRunDTO
from connector_sync.integrations.core.exceptions import ConcurrencyError
from connector_sync.main import app
from connector_sync.utils.dates import utcnow
from tests.conftest import FAKE_SLUG, item_url, items_url, raw_issue

TENANT = {"X-Tenant-Id": "1"}


def ingestor_scope_for(harness):
    @asynccontextmanager
    async def scope():
        yield harness.ingestor

    return lambda: scope


def broken_ingestor_scope():
    @asynccontextmanager
    async def scope():
        raise ValueError("Fernet key must be 32 url-safe base64-encoded bytes.")
        yield

    return scope


class BusyOrchestrator:
    def is_sync_in_progress(self, connection_id: int) -> bool:
        return True

    async def sync_connection(self, tenant_id, connection_id, **kwargs):
        raise ConcurrencyError(connection_id)


@pytest.fixture
def client(harness):
    app.dependency_overrides[get_sync_orchestrator] = lambda: harness.orchestrator
    app.dependency_overrides[get_webhook_ingestor_scope] = ingestor_scope_for(harness)
    app.dependency_overrides[get_connection_service] = lambda: harness.connection_service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "disconnected"}


class TestConnectionRoutes:
    def test_missing_tenant_header_is_rejected(self, client):
        response = client.get("/api/v1/connections")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "TENANT_REQUIRED"

    def test_list_connections(self, client, harness):
        harness.add_connection()
        harness.add_connection(tenant_id=2)

        response = client.get("/api/v1/connections", headers=TENANT)

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]["connections"]) == 1
        assert body["meta"]["request_id"]
        assert "access_token_encrypted" not in body["data"]["connections"][0]

    def test_unknown_connection_is_404(self, client):
        response = client.get("/api/v1/connections/999", headers=TENANT)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONNECTION_NOT_FOUND"

    def test_update_settings(self, client, harness):
        connection = harness.add_connection()

        response = client.patch(
            f"/api/v1/connections/{connection.id}/settings",
            json={"sync_interval_minutes": 30, "status_filter": ["Open"]},
            headers=TENANT,
        )

        assert response.status_code == 200
        stored = harness.connections.rows[connection.id].sync_settings
        assert stored.sync_interval_minutes == 30
        assert stored.status_filter == ["Open"]

    def test_invalid_settings_are_422(self, client, harness):
        connection = harness.add_connection()

        response = client.patch(
            f"/api/v1/connections/{connection.id}/settings",
            json={"sync_interval_minutes": 0},
            headers=TENANT,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_revoke(self, client, harness):
        connection = harness.add_connection()

        response = client.delete(f"/api/v1/connections/{connection.id}", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["data"]["success"] is True

    def test_refresh_token(self, client, harness):
        connection = harness.add_connection()

        response = client.post(
            f"/api/v1/connections/{connection.id}/refresh", headers=TENANT
        )

        assert response.status_code == 200
        assert response.json()["data"]["id"] == connection.id
        stored = harness.connections.rows[connection.id]
        assert harness.cipher.decrypt(stored.access_token_encrypted) == "refreshed-access"

    def test_refresh_other_tenants_connection_is_404(self, client, harness):
        connection = harness.add_connection(tenant_id=2)

        response = client.post(
            f"/api/v1/connections/{connection.id}/refresh", headers=TENANT
        )

        assert response.status_code == 404
        assert harness.provider.refresh_calls == []

    def test_get_entity_by_key(self, client, harness):
        connection = harness.add_connection()
        harness.client.add_pages(
            items_url("ALPHA"), {"issues": [raw_issue("10001", key="ALPHA-1")]}
        )
        client.post(f"/api/v1/connections/{connection.id}/sync", headers=TENANT)

        response = client.get(
            f"/api/v1/connections/{connection.id}/entities/ALPHA-1", headers=TENANT
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["external_id"] == "10001"
        assert data["external_key"] == "ALPHA-1"
        assert "raw_data" not in data

    def test_missing_entity_is_404(self, client, harness):
        connection = harness.add_connection()

        response = client.get(
            f"/api/v1/connections/{connection.id}/entities/404", headers=TENANT
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ENTITY_NOT_FOUND"

    def test_entity_of_other_tenant_is_404(self, client, harness):
        connection = harness.add_connection(tenant_id=2)
        harness.client.add_pages(items_url("ALPHA"), {"issues": [raw_issue("10001")]})
        client.post(
            f"/api/v1/connections/{connection.id}/sync",
            headers={"X-Tenant-Id": "2"},
        )

        response = client.get(
            f"/api/v1/connections/{connection.id}/entities/10001", headers=TENANT
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONNECTION_NOT_FOUND"


class TestSyncRoutes:
    def test_manual_sync_returns_completed_run(self, client, harness):
        connection = harness.add_connection()
        harness.client.add_pages(items_url("ALPHA"), {"issues": [raw_issue("1")]})

        response = client.post(
            f"/api/v1/connections/{connection.id}/sync",
            json={"force_full": True},
            headers=TENANT,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "completed"
        assert data["kind"] == "full"
        assert data["items_created"] == 1

    def test_manual_sync_without_body(self, client, harness):
        connection = harness.add_connection()

        response = client.post(
            f"/api/v1/connections/{connection.id}/sync", headers=TENANT
        )

        assert response.status_code == 200

    def test_sync_in_progress_is_409(self, client, harness):
        connection = harness.add_connection()
        app.dependency_overrides[get_sync_orchestrator] = BusyOrchestrator

        response = client.post(
            f"/api/v1/connections/{connection.id}/sync", headers=TENANT
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SYNC_IN_PROGRESS"

    def test_sync_unknown_connection_is_404(self, client):
        response = client.post("/api/v1/connections/999/sync", headers=TENANT)

        assert response.status_code == 404

    def test_history_and_status(self, client, harness):
        connection = harness.add_connection()
        client.post(f"/api/v1/connections/{connection.id}/sync", headers=TENANT)

        history = client.get(
            f"/api/v1/connections/{connection.id}/sync/history", headers=TENANT
        )
        status = client.get(
            f"/api/v1/connections/{connection.id}/sync/status", headers=TENANT
        )

        assert len(history.json()["data"]["runs"]) == 1
        data = status.json()["data"]
        assert data["in_progress"] is False
        assert data["latest_run"]["status"] == "completed"
        assert data["failed_sync_attempts"] == 0
        assert data["current_run"] is None

    def test_status_reports_run_left_open_by_another_worker(self, client, harness):
        connection = harness.add_connection()
        asyncio.run(
            harness.runs.create(
                CreateSyncRunDTO(
                    tenant_id=1,
                    connection_id=connection.id,
                    kind=SyncRunKind.INCREMENTAL,
                    started_at=utcnow(),
                )
            )
        )

        response = client.get(
            f"/api/v1/connections/{connection.id}/sync/status", headers=TENANT
        )

        data = response.json()["data"]
        assert data["in_progress"] is True
        assert data["current_run"]["status"] == "in_progress"

    def test_history_limit_is_bounded(self, client, harness):
        connection = harness.add_connection()

        response = client.get(
            f"/api/v1/connections/{connection.id}/sync/history?limit=500",
            headers=TENANT,
        )

        assert response.status_code == 422


class TestConnectorRoutes:
    def test_list_connectors(self, client):
        response = client.get("/api/v1/connectors")

        assert response.json()["data"]["providers"] == [
            "jira",
            "microsoft-teams",
            "servicenow",
        ]

    def test_authorize_returns_vendor_url(self, client):
        response = client.post(
            f"/api/v1/connectors/{FAKE_SLUG}/authorize", json={}, headers=TENANT
        )

        assert response.status_code == 200
        assert response.json()["data"]["authorization_url"].startswith(
            "https://fake.test/authorize?state="
        )

    def test_callback_with_bad_state_redirects_with_error(self, client):
        response = client.get(
            f"/api/v1/connectors/{FAKE_SLUG}/callback",
            params={"code": "abc", "state": "garbage"},
            follow_redirects=False,
        )

        assert response.status_code == 307
        assert "error=INVALID_STATE" in response.headers["location"]


class TestWebhookRoutes:
    def test_validation_token_is_echoed(self, client):
        response = client.post(
            "/api/v1/webhooks/microsoft-teams?validationToken=abc123", content=b""
        )

        assert response.status_code == 200
        assert response.text == "abc123"
        assert response.headers["content-type"].startswith("text/plain")

    def test_event_is_ingested(self, client, harness):
        connection = harness.add_connection()
        client.post(f"/api/v1/connections/{connection.id}/sync", headers=TENANT)
        harness.client.add_pages(item_url("1"), raw_issue("1"))

        response = client.post(
            f"/api/v1/webhooks/{FAKE_SLUG}",
            json={"id": "1", "project": "ALPHA", "action": "upsert"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["received"] == 1
        assert data["results"][0]["status"] == "processed"

    def test_malformed_body_is_acknowledged(self, client):
        response = client.post(
            f"/api/v1/webhooks/{FAKE_SLUG}",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["received"] == 0

    def test_unknown_provider_is_acknowledged(self, client):
        response = client.post("/api/v1/webhooks/unknown", json={"id": "1"})

        assert response.status_code == 200
        assert response.json()["data"]["results"] == []

    def test_database_outage_is_acknowledged(self):
        client = TestClient(app)

        response = client.post(
            "/api/v1/webhooks/jira",
            json={"webhookEvent": "jira:issue_updated", "issue": {"id": "1"}},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"received": 0, "results": []}

    def test_failing_ingestor_setup_is_acknowledged(self, client):
        app.dependency_overrides[get_webhook_ingestor_scope] = broken_ingestor_scope

        response = client.post(f"/api/v1/webhooks/{FAKE_SLUG}", json={"id": "1"})

        assert response.status_code == 200
        assert response.json()["data"]["received"] == 0
