"""
Tests for the request gateway: envelope, negotiation, region routing,
error mapping, telemetry and write fanout.
"""

import asyncio
import json
import re
from unittest.mock import Mock

import pytest

from edge_gateway.services.fanout import DisabledEventPublisher
from edge_gateway.services.gateway import RequestGateway, generate_request_id
from edge_gateway.services.telemetry import MockTelemetryStore

OLD_APP = {"X-App-Name": "customer", "X-App-Version": "1.0.0"}
NEW_APP = {"X-App-Name": "customer", "X-App-Version": "1.4.0"}


def body(rpc=None, payload=None, **extra) -> bytes:
    data = dict(extra)
    if rpc is not None:
        data["rpc"] = rpc
    if payload is not None:
        data["payload"] = payload
    return json.dumps(data).encode()


class TestEnvelope:

    async def test_old_client_served_fallback(self, gateway):
        result = await gateway.handle(body("get_stores", {}), OLD_APP)
        meta = result.body["meta"]

        assert result.status_code == 200
        assert meta["version"] == "v1"
        assert meta["fallback"] is True
        assert meta["rpc"] == "get_stores"
        assert "error" not in result.body

    async def test_explicit_version_in_body(self, gateway):
        result = await gateway.handle(body("get_menu_items", {}, version="v2"), NEW_APP)
        meta = result.body["meta"]

        assert meta["version"] == "v2"
        assert meta["fallback"] is False
        for item in result.body["data"]:
            assert "customizations" in item
            assert "dietary_tags" not in item

    async def test_version_header(self, gateway):
        headers = {**OLD_APP, "X-Api-Version": "v2"}
        result = await gateway.handle(body("get_features", {}), headers)

        assert result.body["meta"]["version"] == "v2"
        assert result.body["meta"]["fallback"] is False

    async def test_body_version_wins_over_header(self, gateway):
        headers = {**NEW_APP, "X-Api-Version": "v2"}
        result = await gateway.handle(body("get_stores", {}, version="v1"), headers)

        assert result.body["meta"]["version"] == "v1"

    async def test_envelope_metadata(self, gateway):
        result = await gateway.handle(body("get_stores", {}), NEW_APP)
        meta = result.body["meta"]

        assert meta["version"]
        assert meta["requestId"]
        assert meta["executionTime"] >= 0
        assert result.headers["X-Request-Id"] == meta["requestId"]
        assert result.headers["X-Api-Version"] == "v3"
        assert result.headers["X-Region"] == meta["region"]
        assert float(result.headers["X-Execution-Time"]) >= 0

    async def test_defaults_without_headers(self, gateway):
        result = await gateway.handle(body("get_stores", {}), {})

        # Default app version 1.0.0 is below the v3 minimum
        assert result.body["meta"]["version"] == "v1"
        assert result.body["meta"]["region"] == "us-east-1"

    async def test_header_names_are_case_insensitive(self, gateway):
        result = await gateway.handle(body("get_stores", {}), {"x-app-version": "1.4.0"})
        assert result.body["meta"]["version"] == "v3"

    async def test_repeated_reads_are_identical(self, gateway):
        first = await gateway.handle(body("get_stores", {}), NEW_APP)
        second = await gateway.handle(body("get_stores", {}), NEW_APP)

        assert first.body["data"] == second.body["data"]
        assert first.body["meta"]["requestId"] != second.body["meta"]["requestId"]

    async def test_switch_applies_to_next_request(self, gateway, registry):
        headers = {"X-App-Version": "1.2.0"}
        before = await gateway.handle(body("get_stores", {}), headers)

        registry.set_active_version("v2", "v1")
        after = await gateway.handle(body("get_stores", {}), headers)

        assert before.body["meta"]["version"] == "v1"
        assert after.body["meta"]["version"] == "v2"

    async def test_concurrent_mixed_versions(self, gateway):
        versions = ["v1", "v2", "v3"]
        calls = [
            gateway.handle(body("get_menu_items", {}, version=versions[i % 3]), NEW_APP)
            for i in range(20)
        ]
        results = await asyncio.gather(*calls)

        for i, result in enumerate(results):
            assert result.status_code == 200
            assert result.body["meta"]["version"] == versions[i % 3]
        assert len({r.body["meta"]["requestId"] for r in results}) == 20


class TestErrors:

    async def test_missing_rpc(self, gateway):
        result = await gateway.handle(b"{}", NEW_APP)

        assert result.status_code == 400
        assert "rpc" in result.body["error"]
        assert result.body["code"] == "missing_required_field"
        assert result.body["requestId"]

    async def test_invalid_json(self, gateway):
        result = await gateway.handle(b"{not json", NEW_APP)

        assert result.status_code == 500
        assert result.body["code"] == "malformed_request"

    @pytest.mark.parametrize("raw", [b"", b"[]", b'"get_stores"'])
    async def test_body_must_be_object(self, gateway, raw):
        result = await gateway.handle(raw, NEW_APP)
        assert result.status_code == 500

    async def test_payload_must_be_object(self, gateway):
        result = await gateway.handle(body("get_stores", [1, 2]), NEW_APP)

        assert result.status_code == 400
        assert result.body["code"] == "invalid_field_value"

    @pytest.mark.parametrize("rpc", [42, "", ["get_stores"]])
    async def test_rpc_must_be_a_name(self, gateway, rpc):
        result = await gateway.handle(json.dumps({"rpc": rpc}).encode(), NEW_APP)

        assert result.status_code == 400
        assert result.body["code"] == "missing_required_field"

    @pytest.mark.parametrize("field", ["version", "region"])
    async def test_version_and_region_must_be_strings(self, gateway, field):
        result = await gateway.handle(body("get_stores", {}, **{field: 2}), NEW_APP)

        assert result.status_code == 400
        assert result.body["code"] == "invalid_field_value"
        assert field in result.body["error"]

    async def test_null_payload_is_empty_object(self, gateway):
        raw = json.dumps({"rpc": "get_stores", "payload": None}).encode()
        result = await gateway.handle(raw, NEW_APP)

        assert result.status_code == 200
        assert len(result.body["data"]) == 3

    async def test_unknown_operation_keeps_envelope(self, gateway):
        result = await gateway.handle(body("get_features", {}), OLD_APP)

        assert result.status_code == 200
        assert result.body["data"] is None
        assert result.body["error"]["code"] == "unknown_operation"
        assert result.body["meta"]["version"] == "v1"
        assert result.body["meta"]["fallback"] is True

    async def test_failed_operation_keeps_envelope(self, gateway):
        result = await gateway.handle(body("get_store", {"store_id": 99}), NEW_APP)

        assert result.status_code == 200
        assert result.body["error"]["code"] == "operation_failed"
        assert "Store 99 not found" in result.body["error"]["message"]

    async def test_unexpected_error(self, gateway):
        gateway.resolver = Mock()
        gateway.resolver.resolve.side_effect = RuntimeError("boom")

        result = await gateway.handle(body("get_stores", {}), NEW_APP)

        assert result.status_code == 500
        assert result.body["error"] == "Internal server error"


class TestRegions:

    async def test_read_uses_client_region(self, gateway):
        result = await gateway.handle(body("get_stores", {}), {**NEW_APP, "X-Client-Region": "eu-west-1"})
        assert result.body["meta"]["region"] == "eu-west-1"
        assert result.headers["X-Region"] == "eu-west-1"

    async def test_body_region_wins(self, gateway):
        result = await gateway.handle(
            body("get_stores", {}, region="us-west-2"),
            {**NEW_APP, "X-Client-Region": "eu-west-1"},
        )
        assert result.body["meta"]["region"] == "us-west-2"

    async def test_unknown_region_uses_primary(self, gateway):
        result = await gateway.handle(body("get_stores", {}), {**NEW_APP, "X-Client-Region": "mars-1"})
        assert result.body["meta"]["region"] == "us-east-1"

    async def test_writes_go_to_primary(self, gateway):
        result = await gateway.handle(
            body("place_order", {"store_id": 1}, region="eu-west-1"),
            {**NEW_APP, "X-Client-Region": "eu-west-1"},
        )
        assert result.body["meta"]["region"] == "us-east-1"
        assert result.body["data"]["region"] == "us-east-1"


class TestTelemetry:

    async def test_success_recorded(self, gateway, store):
        result = await gateway.handle(
            body("get_stores", {}),
            {**OLD_APP, "X-Client-Id": "kiosk-7", "X-Client-Region": "us-west-2"},
        )
        row = store.find_request(result.body["meta"]["requestId"])

        assert row.rpc == "get_stores"
        assert row.app_version == "1.0.0"
        assert row.client_id == "kiosk-7"
        assert row.resolved_version == "v1"
        assert row.used_fallback is True
        assert row.serving_region == "us-west-2"
        assert row.success is True
        assert row.status_code == 200

    async def test_client_error_recorded(self, gateway, store):
        result = await gateway.handle(b"{}", NEW_APP)
        row = store.find_request(result.body["requestId"])

        assert row.status_code == 400
        assert row.success is False
        assert row.error_code == "missing_required_field"

    async def test_business_error_recorded(self, gateway, store):
        result = await gateway.handle(body("launch_rockets", {}), NEW_APP)
        row = store.find_request(result.body["meta"]["requestId"])

        assert row.status_code == 200
        assert row.success is False
        assert row.error_code == "unknown_operation"

    async def test_requested_version_recorded_even_if_unknown(self, gateway, store):
        result = await gateway.handle(body("get_stores", {}, version="v99"), NEW_APP)
        row = store.find_request(result.body["meta"]["requestId"])

        assert row.requested_version == "v99"
        assert row.resolved_version == "v3"

    async def test_store_failure_does_not_fail_request(self, registry, resolver, dispatcher):
        gateway = RequestGateway(
            registry=registry,
            resolver=resolver,
            dispatcher=dispatcher,
            telemetry=MockTelemetryStore(fail_writes=True),
            event_publisher=DisabledEventPublisher(),
        )
        result = await gateway.handle(body("get_stores", {}), NEW_APP)

        assert result.status_code == 200
        assert len(result.body["data"]) == 3


class TestWriteFanout:

    async def test_successful_write_is_broadcast(self, gateway, publisher, transport):
        result = await gateway.handle(body("place_order", {"store_id": 1, "total": 9.5}), NEW_APP)
        await publisher.drain()

        assert sorted(transport.delivered_to()) == ["eu-west-1", "us-west-2"]
        _, event_name, message = transport.delivered[0]
        assert event_name == "order_created"
        assert message["_type"] == "order_created"
        assert message["rpc"] == "place_order"
        assert message["requestId"] == result.body["meta"]["requestId"]
        assert message["order_id"] == result.body["data"]["order_id"]
        assert message["_fanout"]["sourceRegion"] == "us-east-1"

    async def test_store_status_broadcast_with_high_priority(self, gateway, publisher, transport):
        await gateway.handle(body("set_store_status", {"store_id": 3, "is_open": True}), NEW_APP)
        await publisher.drain()

        _, event_name, message = transport.delivered[0]
        assert event_name == "store_status"
        assert message["_fanout"]["priority"] == "high"

    async def test_reads_are_not_broadcast(self, gateway, publisher, transport):
        await gateway.handle(body("get_stores", {}), NEW_APP)
        await publisher.drain()

        assert transport.delivered == []

    async def test_failed_writes_are_not_broadcast(self, gateway, publisher, transport):
        result = await gateway.handle(body("place_order", {"store_id": 99}), NEW_APP)
        await publisher.drain()

        assert result.body["error"]["code"] == "operation_failed"
        assert transport.delivered == []


def test_request_id_format():
    assert re.fullmatch(r"req_\d{13}_[a-z0-9]{7}", generate_request_id())
