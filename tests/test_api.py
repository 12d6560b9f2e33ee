"""Tests for the Hookwire REST API."""

import asyncio
from datetime import timedelta

import httpx
import pytest
from conftest import START, FakeClock, Receiver, payment
from fastapi.testclient import TestClient

from hookwire.api.app import create_app
from hookwire.api.auth import TokenValidator
from hookwire.api.router import set_service
from hookwire.config import Settings
from hookwire.models import REDACTED_SECRET
from hookwire.service import HookwireService
from hookwire.signing import canonical_bytes
from hookwire.storage import InMemoryWebhookStore

USER = {"X-User-Id": "user_1"}
OTHER = {"X-User-Id": "user_2"}
ADMIN = {"X-User-Id": "root", "X-User-Scopes": "read, admin"}


@pytest.fixture
def api_receiver():
    return Receiver(200)


@pytest.fixture
def service(settings, api_receiver):
    """Memory-backed service whose outbound requests hit the scripted receiver."""
    return HookwireService.create(
        settings,
        store=InMemoryWebhookStore(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(api_receiver)),
        clock=FakeClock(),
    )


@pytest.fixture
def client(settings, service):
    """Test client for the full app, with the lifespan bypassed."""
    app = create_app(settings)
    set_service(service)
    yield TestClient(app)
    set_service(None)


def register(client, headers=USER, **body):
    body.setdefault("url", "https://example.com/hooks")
    body.setdefault("events", ["payment.success"])
    response = client.post("/api/v1/webhooks", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestSystem:
    """Tests for /health and service availability."""

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_backend"] == "memory"
        assert data["scheduler_running"] is False
        assert "version" in data

    def test_health_without_service(self, client):
        set_service(None)
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_routes_unavailable_without_service(self, client):
        set_service(None)
        response = client.get("/api/v1/webhooks", headers=USER)
        assert response.status_code == 503

    def test_identity_required(self, client):
        response = client.get("/api/v1/webhooks")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "authentication_error"


class TestEndpointManagement:
    """Tests for endpoint CRUD routes."""

    def test_register_returns_secret_once(self, client):
        data = register(client, description="billing")

        assert len(data["secret"]) == 64
        endpoint = data["endpoint"]
        assert endpoint["id"].startswith("whk_")
        assert endpoint["secret"] == REDACTED_SECRET
        assert endpoint["retry_policy"]["strategy"] == "EXPONENTIAL"

        fetched = client.get(f"/api/v1/webhooks/{endpoint['id']}", headers=USER).json()
        assert fetched["secret"] == REDACTED_SECRET
        assert data["secret"] not in str(fetched)

    def test_register_http_url_rejected(self, client):
        response = client.post(
            "/api/v1/webhooks",
            json={"url": "http://example.com/hooks", "events": ["payment.success"]},
            headers=USER,
        )
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "url"

    def test_register_unknown_event_rejected(self, client):
        response = client.post(
            "/api/v1/webhooks",
            json={"url": "https://example.com/hooks", "events": ["invoice.sent"]},
            headers=USER,
        )
        assert response.status_code == 400

    def test_register_bad_policy_rejected(self, client):
        response = client.post(
            "/api/v1/webhooks",
            json={
                "url": "https://example.com/hooks",
                "events": ["payment.success"],
                "retry_policy": {"max_retries": 0},
            },
            headers=USER,
        )
        assert response.status_code == 400

    def test_list_is_scoped_to_owner(self, client):
        mine = register(client)
        register(client, headers=OTHER)

        data = client.get("/api/v1/webhooks", headers=USER).json()

        assert data["count"] == 1
        assert data["endpoints"][0]["id"] == mine["endpoint"]["id"]

    def test_list_all(self, client):
        register(client)
        register(client, headers=OTHER)

        assert client.get("/api/v1/webhooks?all=true", headers=USER).status_code == 403
        assert client.get("/api/v1/webhooks?all=true", headers=ADMIN).json()["count"] == 2

    def test_get_other_owner_forbidden(self, client):
        endpoint_id = register(client)["endpoint"]["id"]

        assert client.get(f"/api/v1/webhooks/{endpoint_id}", headers=OTHER).status_code == 403
        assert client.get(f"/api/v1/webhooks/{endpoint_id}", headers=ADMIN).status_code == 200

    def test_get_missing(self, client):
        response = client.get("/api/v1/webhooks/whk_missing", headers=USER)
        assert response.status_code == 404
        assert response.json()["error"]["resource_type"] == "endpoint"

    def test_patch(self, client):
        endpoint_id = register(client, description="old")["endpoint"]["id"]

        response = client.patch(
            f"/api/v1/webhooks/{endpoint_id}",
            json={"active": False, "events": ["bill.paid"]},
            headers=USER,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["active"] is False
        assert data["events"] == ["bill.paid"]
        assert data["description"] == "old"

    def test_patch_http_url_rejected(self, client):
        endpoint_id = register(client)["endpoint"]["id"]
        response = client.patch(
            f"/api/v1/webhooks/{endpoint_id}", json={"url": "http://x.example"}, headers=USER
        )
        assert response.status_code == 400

    def test_delete(self, client):
        endpoint_id = register(client)["endpoint"]["id"]

        assert client.delete(f"/api/v1/webhooks/{endpoint_id}", headers=OTHER).status_code == 403
        assert client.delete(f"/api/v1/webhooks/{endpoint_id}", headers=USER).status_code == 204
        assert client.get(f"/api/v1/webhooks/{endpoint_id}", headers=USER).status_code == 404

    def test_rotate_secret(self, client):
        data = register(client)
        endpoint_id = data["endpoint"]["id"]

        response = client.post(f"/api/v1/webhooks/{endpoint_id}/rotate-secret", headers=USER)

        assert response.status_code == 200
        assert response.json()["endpoint_id"] == endpoint_id
        assert response.json()["secret"] != data["secret"]


class TestDeliveries:
    """Tests for delivery, test and monitoring routes."""

    def test_test_delivery_default_body(self, client, api_receiver):
        endpoint_id = register(client)["endpoint"]["id"]

        response = client.post(f"/api/v1/webhooks/{endpoint_id}/test", headers=USER)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["status_code"] == 200
        assert len(api_receiver.requests) == 1

    def test_test_delivery_with_payload(self, client, api_receiver):
        endpoint_id = register(client)["endpoint"]["id"]

        response = client.post(
            f"/api/v1/webhooks/{endpoint_id}/test",
            json={"event_type": "payment.success", "payload": payment()},
            headers=USER,
        )

        assert response.status_code == 200
        assert api_receiver.requests[0].content == canonical_bytes(payment())

    def test_test_delivery_invalid_payload(self, client):
        endpoint_id = register(client)["endpoint"]["id"]
        response = client.post(
            f"/api/v1/webhooks/{endpoint_id}/test",
            json={"event_type": "payment.success", "payload": {"id": "pay_1"}},
            headers=USER,
        )
        assert response.status_code == 400

    def test_history_stats_logs_and_health(self, client, service):
        endpoint_id = register(client)["endpoint"]["id"]
        asyncio.run(service.publish("payment.success", payment(card_number="4111111111111111")))

        history = client.get(f"/api/v1/webhooks/{endpoint_id}/deliveries", headers=USER).json()
        assert history["count"] == 1
        record = history["deliveries"][0]
        assert record["event"]["status"] == "DELIVERED"
        assert record["event"]["payload"]["card_number"] == "[REDACTED]"
        assert len(record["attempts"]) == 1

        stats = client.get(f"/api/v1/webhooks/{endpoint_id}/stats", headers=USER).json()
        assert stats["total_events"] == 1
        assert stats["delivered"] == 1

        logs = client.get(f"/api/v1/webhooks/{endpoint_id}/logs", headers=USER).json()
        assert {entry["action"] for entry in logs["logs"]} >= {"CREATED", "TRIGGERED"}

        health = client.get(f"/api/v1/webhooks/{endpoint_id}/health", headers=USER).json()
        assert health["status"] == "HEALTHY"

    def test_monitoring_requires_ownership(self, client):
        endpoint_id = register(client)["endpoint"]["id"]
        for path in ("deliveries", "stats", "logs", "health"):
            response = client.get(f"/api/v1/webhooks/{endpoint_id}/{path}", headers=OTHER)
            assert response.status_code == 403

    def test_manual_retry(self, client, service, api_receiver):
        endpoint_id = register(client)["endpoint"]["id"]
        api_receiver.responses = [500]
        [result] = asyncio.run(service.publish("payment.success", payment()))
        [event_id] = result.value
        api_receiver.responses = [200]

        response = client.post(
            f"/api/v1/webhooks/{endpoint_id}/events/{event_id}/retry", headers=USER
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        event = asyncio.run(service.store.get_event(event_id))
        assert event.status.value == "DELIVERED"
        assert event.attempts == 1

    def test_manual_retry_event_of_other_endpoint(self, client, service):
        first = register(client)["endpoint"]["id"]
        second = register(client, events=["bill.paid"])["endpoint"]["id"]
        [result] = asyncio.run(service.publish("payment.success", payment()))
        [event_id] = result.value

        response = client.post(f"/api/v1/webhooks/{second}/events/{event_id}/retry", headers=USER)

        assert response.status_code == 404
        assert first != second


class TestAdmin:
    """Tests for administrative routes."""

    def test_admin_scope_required(self, client):
        assert client.get("/api/v1/admin/dashboard", headers=USER).status_code == 403
        assert client.get("/api/v1/admin/failed-deliveries", headers=USER).status_code == 403
        assert client.post("/api/v1/admin/retry", json={}, headers=USER).status_code == 403

    def test_dashboard(self, client):
        register(client)
        register(client, headers=OTHER)

        data = client.get("/api/v1/admin/dashboard", headers=ADMIN).json()

        assert data["total_endpoints"] == 2
        assert data["endpoints_by_health"]["UNKNOWN"] == 2

    def test_failed_deliveries_and_bulk_retry(self, client, service, api_receiver):
        register(client, retry_policy={"max_retries": 1})
        api_receiver.responses = [500]
        asyncio.run(service.publish("payment.success", payment()))

        failed = client.get("/api/v1/admin/failed-deliveries", headers=ADMIN).json()
        assert failed["count"] == 1
        assert failed["deliveries"][0]["last_status_code"] == 500

        api_receiver.responses = [200]
        result = client.post("/api/v1/admin/retry", json={}, headers=ADMIN).json()
        assert result["requested"] == 1
        assert result["delivered"] == 1
        assert client.get("/api/v1/admin/failed-deliveries", headers=ADMIN).json()["count"] == 0

    def test_performance_report(self, client, service):
        register(client)
        asyncio.run(service.publish("payment.success", payment()))

        response = client.get(
            "/api/v1/admin/reports/performance",
            params={
                "start": START.isoformat(),
                "end": (START + timedelta(days=1)).isoformat(),
            },
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["total_attempts"] == 1

    def test_performance_report_inverted_window(self, client):
        response = client.get(
            "/api/v1/admin/reports/performance",
            params={"start": START.isoformat(), "end": START.isoformat()},
            headers=ADMIN,
        )
        assert response.status_code == 400

    def test_export_csv(self, client, service):
        register(client)
        asyncio.run(service.publish("payment.success", payment()))

        response = client.get(
            "/api/v1/admin/export",
            params={
                "format": "csv",
                "start": START.isoformat(),
                "end": (START + timedelta(days=1)).isoformat(),
            },
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert (
            response.headers["content-disposition"]
            == 'attachment; filename="webhook_attempts_20260115_20260116.csv"'
        )
        assert response.text.count("\n") >= 2

    def test_export_unknown_format(self, client):
        response = client.get(
            "/api/v1/admin/export",
            params={
                "format": "xml",
                "start": START.isoformat(),
                "end": (START + timedelta(days=1)).isoformat(),
            },
            headers=ADMIN,
        )
        assert response.status_code == 400


class TestTokenAuth:
    """Tests with Bearer token authentication enabled."""

    @pytest.fixture
    def auth_settings(self):
        return Settings(
            env="test", auth_enabled=True, auth_secret_key="k" * 32, scheduler_enabled=False
        )

    @pytest.fixture
    def auth_client(self, auth_settings, service):
        app = create_app(auth_settings)
        service.settings = auth_settings
        set_service(service)
        yield TestClient(app)
        set_service(None)

    def test_bearer_token(self, auth_client):
        token = TokenValidator("k" * 32).create_token("user_1")
        response = auth_client.get(
            "/api/v1/webhooks", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200
        assert response.json()["count"] == 0

    def test_headers_ignored_when_auth_enabled(self, auth_client):
        assert auth_client.get("/api/v1/webhooks", headers=USER).status_code == 401

    def test_forged_token(self, auth_client):
        token = TokenValidator("other-key").create_token("user_1", ["admin"])
        response = auth_client.get(
            "/api/v1/admin/dashboard", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
