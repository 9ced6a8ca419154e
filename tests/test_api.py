"""
HTTP tests for the FastAPI application.
"""

from datetime import datetime, timezone

import pytest

import edge_gateway.main
from conftest import make_settings
from edge_gateway.core.config import get_settings
from edge_gateway.main import app, restore_active_version
from edge_gateway.services.telemetry import MockTelemetryStore, StoredVersionConfig

OLD_APP = {"X-App-Name": "customer", "X-App-Version": "1.0.0"}


class TestGatewayEndpoint:

    def test_old_client_served_fallback(self, client):
        response = client.post("/api/gateway", json={"rpc": "get_stores", "payload": {}}, headers=OLD_APP)
        body = response.json()

        assert response.status_code == 200
        assert body["meta"]["version"] == "v1"
        assert body["meta"]["fallback"] is True
        assert response.headers["x-api-version"] == "v1"
        assert response.headers["x-request-id"] == body["meta"]["requestId"]
        assert response.headers["x-region"] == "us-east-1"

    def test_missing_rpc(self, client):
        response = client.post("/api/gateway", content=b"{}", headers=OLD_APP)

        assert response.status_code == 400
        assert "rpc" in response.json()["error"]

    def test_invalid_json(self, client):
        response = client.post(
            "/api/gateway",
            content=b"{rpc:",
            headers={**OLD_APP, "Content-Type": "application/json"},
        )
        assert response.status_code == 500

    def test_telemetry_written(self, client, store):
        response = client.post("/api/gateway", json={"rpc": "get_stores"}, headers=OLD_APP)
        row = store.find_request(response.json()["meta"]["requestId"])

        assert row is not None
        assert row.resolved_version == "v1"


class TestFanoutEndpoint:

    def test_broadcast(self, client, transport):
        response = client.post("/api/fanout", json={
            "type": "order_status",
            "payload": {"order_id": 42, "status": "ready"},
            "sourceRegion": "us-east-1",
        })
        body = response.json()

        assert response.status_code == 200
        assert body["success"] is True
        assert len(body["deliveries"]) == 2
        assert response.headers["x-fanout-regions"] == "us-west-2,eu-west-1"
        assert response.headers["x-fanout-success"] == "2"
        assert sorted(transport.delivered_to()) == ["eu-west-1", "us-west-2"]

    def test_missing_payload(self, client):
        response = client.post("/api/fanout", json={"type": "order_status"})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Missing required fields: type, payload",
            "code": "invalid_event",
        }


class TestVersionEndpoints:

    def test_bootstrap_active_version(self, client):
        body = client.get("/api/versions/active").json()

        assert body["current"] == "v3"
        assert body["fallback"] == "v1"
        assert body["updated_at"]

    def test_switch_takes_effect_and_is_persisted(self, client, store):
        headers = {"X-App-Version": "1.2.0"}
        before = client.post("/api/gateway", json={"rpc": "get_stores"}, headers=headers).json()

        response = client.put("/api/versions/active", json={"current": "V2", "fallback": "v1"})
        after = client.post("/api/gateway", json={"rpc": "get_stores"}, headers=headers).json()

        assert response.status_code == 200
        assert response.json()["current"] == "v2"
        assert store.version_config.current == "v2"
        assert store.version_config.fallback == "v1"
        assert before["meta"]["version"] == "v1"
        assert after["meta"]["version"] == "v2"

    @pytest.mark.parametrize("update", [
        {"current": "v9", "fallback": "v1"},
        {"current": "v1", "fallback": "v3"},
    ])
    def test_invalid_switch_rejected(self, client, registry, update):
        response = client.put("/api/versions/active", json=update)

        assert response.status_code == 400
        assert registry.get_active_version().current == "v3"

    def test_empty_version_is_validation_error(self, client):
        response = client.put("/api/versions/active", json={"current": " ", "fallback": "v1"})
        assert response.status_code == 422

    def test_admin_token_required_when_configured(self, client, registry):
        app.dependency_overrides[get_settings] = lambda: make_settings(admin_token="secret")
        update = {"current": "v2", "fallback": "v1"}

        denied = client.put("/api/versions/active", json=update)
        wrong = client.put("/api/versions/active", json=update, headers={"X-Admin-Token": "nope"})
        allowed = client.put("/api/versions/active", json=update, headers={"X-Admin-Token": "secret"})

        assert denied.status_code == 401
        assert wrong.status_code == 401
        assert allowed.status_code == 200
        assert registry.get_active_version().current == "v2"

    def test_persist_failure_still_switches(self, client, registry):
        from edge_gateway.services.telemetry import get_telemetry_store

        app.dependency_overrides[get_telemetry_store] = lambda: MockTelemetryStore(fail_writes=True)
        response = client.put("/api/versions/active", json={"current": "v4", "fallback": "v2"})

        assert response.status_code == 200
        assert registry.get_active_version().current == "v4"

    def test_list_versions(self, client):
        body = client.get("/api/versions").json()
        versions = {v["version"]: v for v in body["versions"]}

        assert list(versions) == ["v1", "v2", "v3", "v4", "v5"]
        assert versions["v1"]["status"] == "deprecated"
        assert versions["v3"]["min_app_version"] == "1.4.0"
        assert "get_features" not in versions["v1"]["operations"]
        assert "get_features" in versions["v2"]["operations"]
        assert body["active"]["current"] == "v3"


class TestInfoEndpoints:

    def test_regions(self, client):
        regions = client.get("/api/regions").json()

        assert [r["region"] for r in regions] == ["us-east-1", "us-west-2", "eu-west-1"]
        assert [r["is_primary"] for r in regions] == [True, False, False]

    def test_root(self, client):
        body = client.get("/").json()
        assert body["gateway"] == "/api/gateway"

    def test_health_operational(self, client, monkeypatch):
        async def healthy_redis(redis_url):
            return "healthy"

        monkeypatch.setattr(edge_gateway.main, "check_redis", healthy_redis)
        body = client.get("/health").json()

        assert body["status"] == "operational"
        assert body["data_backend"] == "healthy"
        assert body["telemetry_store"] == "healthy"
        assert body["active_version"] == "v3"
        assert body["fallback_version"] == "v1"

    def test_health_degraded(self, client, monkeypatch):
        async def broken_redis(redis_url):
            return "unhealthy: connection refused"

        monkeypatch.setattr(edge_gateway.main, "check_redis", broken_redis)
        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["redis"].startswith("unhealthy")


class TestRestoreActiveVersion:

    async def test_persisted_config_wins(self, registry):
        store = MockTelemetryStore()
        updated_at = datetime(2026, 1, 5, tzinfo=timezone.utc)
        store.version_config = StoredVersionConfig(current="v4", fallback="v2", updated_at=updated_at)

        await restore_active_version(registry, store)
        active = registry.get_active_version()

        assert (active.current, active.fallback) == ("v4", "v2")
        assert active.updated_at == updated_at

    async def test_nothing_persisted(self, registry):
        await restore_active_version(registry, MockTelemetryStore())
        assert registry.get_active_version().current == "v3"

    async def test_invalid_persisted_config_ignored(self, registry):
        store = MockTelemetryStore()
        store.version_config = StoredVersionConfig(
            current="v9", fallback="v1", updated_at=datetime.now(timezone.utc),
        )

        await restore_active_version(registry, store)
        assert registry.get_active_version().current == "v3"
