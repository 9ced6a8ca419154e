"""
Tests for cross-region event fanout: targeting, isolation of failing
regions, retries, message enrichment, event logging and publishers.
"""

import json
import time

import pytest

from edge_gateway.core.errors import InvalidEvent
from edge_gateway.services.fanout import (
    CeleryEventPublisher,
    DisabledEventPublisher,
    FanoutEvent,
    FanoutEventType,
    FanoutPriority,
    InlineEventPublisher,
    MockDeliveryTransport,
    RegionFanoutBroadcaster,
)
from edge_gateway.services.telemetry import MockTelemetryStore


def order_status_event(source="us-east-1", **kwargs) -> FanoutEvent:
    return FanoutEvent.create(
        event_type=FanoutEventType.ORDER_STATUS,
        payload={"order_id": 42, "status": "ready"},
        source_region=source,
        **kwargs,
    )


def make_broadcaster(registry, transport, store=None, **kwargs) -> RegionFanoutBroadcaster:
    options = {"timeout_seconds": 0.05, "max_retries": 2, "retry_delay_seconds": 0}
    options.update(kwargs)
    return RegionFanoutBroadcaster(registry=registry, transport=transport, store=store, **options)


class TestTargeting:

    async def test_delivers_to_every_other_region(self, broadcaster):
        result = await broadcaster.broadcast(order_status_event())

        assert result.success
        assert [d.region for d in result.deliveries] == ["us-west-2", "eu-west-1"]
        assert all(d.success and d.latency_ms >= 0 for d in result.deliveries)
        assert result.event_id.startswith("evt_")

    @pytest.mark.parametrize("source", ["us-east-1", "us-west-2", "eu-west-1"])
    async def test_never_delivers_to_source(self, broadcaster, source):
        result = await broadcaster.broadcast(order_status_event(source=source))

        assert source not in result.target_regions
        assert len(result.deliveries) == 2

    async def test_explicit_targets_drop_source_and_unknown(self, broadcaster, transport):
        event = order_status_event(target_regions=["eu-west-1", "us-east-1", "mars-1", "eu-west-1"])
        result = await broadcaster.broadcast(event)

        assert result.target_regions == ["eu-west-1"]
        assert transport.delivered_to() == ["eu-west-1"]

    async def test_no_targets_left(self, broadcaster):
        result = await broadcaster.broadcast(order_status_event(target_regions=["us-east-1"]))

        assert result.success
        assert result.deliveries == []

    async def test_empty_target_list_means_every_other_region(self, broadcaster, transport):
        event = FanoutEvent.from_dict(
            {"type": "order_status", "payload": {"order_id": 42}, "sourceRegion": "us-east-1", "targetRegions": []},
            default_source_region="us-east-1",
        )
        result = await broadcaster.broadcast(event)

        assert result.target_regions == ["us-west-2", "eu-west-1"]
        assert sorted(transport.delivered_to()) == ["eu-west-1", "us-west-2"]


class TestIsolation:

    async def test_failing_region_does_not_affect_others(self, registry, store):
        transport = MockDeliveryTransport(failing_regions=["eu-west-1"])
        broadcaster = make_broadcaster(registry, transport, store)

        result = await broadcaster.broadcast(order_status_event())
        outcomes = {d.region: d for d in result.deliveries}

        assert result.success
        assert outcomes["us-west-2"].success
        assert outcomes["us-west-2"].attempts == 1
        assert not outcomes["eu-west-1"].success
        assert outcomes["eu-west-1"].error == "Channel error"
        assert outcomes["eu-west-1"].attempts == 3
        assert result.success_count == 1

    async def test_stalled_region_times_out_alone(self, registry):
        transport = MockDeliveryTransport(stalled_regions=["us-west-2"])
        broadcaster = make_broadcaster(registry, transport, max_retries=1)

        start = time.perf_counter()
        result = await broadcaster.broadcast(order_status_event())
        elapsed = time.perf_counter() - start

        outcomes = {d.region: d for d in result.deliveries}
        assert outcomes["eu-west-1"].success
        assert not outcomes["us-west-2"].success
        assert outcomes["us-west-2"].error == "Timeout after 0.05s"
        # Two attempts of 50ms, not an unbounded wait
        assert elapsed < 1.0

    async def test_flaky_region_recovers_on_retry(self, registry):
        transport = MockDeliveryTransport(flaky_regions={"us-west-2": 2})
        broadcaster = make_broadcaster(registry, transport)

        result = await broadcaster.broadcast(order_status_event())
        outcome = next(d for d in result.deliveries if d.region == "us-west-2")

        assert outcome.success
        assert outcome.attempts == 3
        assert transport.attempts["us-west-2"] == 3

    async def test_no_retries(self, registry):
        transport = MockDeliveryTransport(failing_regions=["us-west-2"])
        broadcaster = make_broadcaster(registry, transport, max_retries=0)

        result = await broadcaster.broadcast(order_status_event())

        assert transport.attempts["us-west-2"] == 1
        assert result.success_count == 1

    async def test_transport_bug_is_contained(self, registry):
        class BrokenTransport(MockDeliveryTransport):
            async def deliver(self, region, event_name, message):
                if region == "eu-west-1":
                    raise KeyError("boom")
                await super().deliver(region, event_name, message)

        broadcaster = make_broadcaster(registry, BrokenTransport(), max_retries=0)
        result = await broadcaster.broadcast(order_status_event())
        outcomes = {d.region: d for d in result.deliveries}

        assert outcomes["us-west-2"].success
        assert "KeyError" in outcomes["eu-west-1"].error


class TestMessage:

    @pytest.mark.parametrize("event_type,tag", [
        (FanoutEventType.ORDER_STATUS, "order_status_update"),
        (FanoutEventType.ORDER_CREATED, "order_created"),
        (FanoutEventType.MENU_UPDATED, "menu_update"),
        (FanoutEventType.STORE_STATUS, "store_status"),
        (FanoutEventType.CUSTOM, "custom"),
    ])
    async def test_type_tag(self, broadcaster, transport, event_type, tag):
        event = FanoutEvent.create(event_type, {"x": 1}, "us-east-1", target_regions=["us-west-2"])
        await broadcaster.broadcast(event)

        _, event_name, message = transport.delivered[0]
        assert event_name == event_type.value
        assert message["_type"] == tag

    async def test_fanout_metadata(self, broadcaster, transport):
        result = await broadcaster.broadcast(order_status_event(source="eu-west-1"))
        message = transport.delivered[0][2]

        assert message["order_id"] == 42
        assert message["status"] == "ready"
        assert message["timestamp"]
        assert message["_fanout"]["sourceRegion"] == "eu-west-1"
        assert message["_fanout"]["eventId"] == result.event_id
        assert message["_fanout"]["priority"] == "normal"

    def test_default_priorities(self):
        store_event = FanoutEvent.create(FanoutEventType.STORE_STATUS, {}, "us-east-1")
        explicit = FanoutEvent.create(FanoutEventType.STORE_STATUS, {}, "us-east-1", priority=FanoutPriority.LOW)

        assert store_event.priority == FanoutPriority.HIGH
        assert order_status_event().priority == FanoutPriority.NORMAL
        assert explicit.priority == FanoutPriority.LOW


class TestEventLog:

    async def test_broadcast_is_logged(self, registry, store):
        transport = MockDeliveryTransport(failing_regions=["eu-west-1"])
        broadcaster = make_broadcaster(registry, transport, store)

        result = await broadcaster.broadcast(order_status_event())
        record = store.fanout_events[0]

        assert record.event_id == result.event_id
        assert record.event_type == "order_status"
        assert record.source_region == "us-east-1"
        assert record.target_regions == ["us-west-2", "eu-west-1"]
        assert record.success_count == 1
        assert record.payload_size == len(json.dumps({"order_id": 42, "status": "ready"}))
        assert [d["success"] for d in record.deliveries] == [True, False]

    async def test_log_failure_does_not_fail_broadcast(self, registry, transport):
        broadcaster = make_broadcaster(registry, transport, MockTelemetryStore(fail_writes=True))
        result = await broadcaster.broadcast(order_status_event())

        assert result.success
        assert result.success_count == 2


class TestEventParsing:

    def test_defaults(self):
        event = FanoutEvent.from_dict(
            {"type": "store_status", "payload": {"store_id": 3}},
            default_source_region="us-east-1",
        )

        assert event.source_region == "us-east-1"
        assert event.target_regions is None
        assert event.priority == FanoutPriority.HIGH

    @pytest.mark.parametrize("data", [
        {},
        {"type": "order_status"},
        {"payload": {"order_id": 1}},
        {"type": "", "payload": {}},
        {"type": "custom", "payload": None},
    ])
    def test_missing_fields(self, data):
        with pytest.raises(InvalidEvent) as exc_info:
            FanoutEvent.from_dict(data, default_source_region="us-east-1")
        assert exc_info.value.message == "Missing required fields: type, payload"

    @pytest.mark.parametrize("data,field", [
        ({"type": "teleport", "payload": {}}, "type"),
        ({"type": "custom", "payload": [1]}, "payload"),
        ({"type": "custom", "payload": {}, "targetRegions": "eu-west-1"}, "targetRegions"),
        ({"type": "custom", "payload": {}, "targetRegions": ["eu-west-1", 5]}, "targetRegions.1"),
        ({"type": "custom", "payload": {}, "priority": "urgent"}, "priority"),
        ({"type": "custom", "payload": {}, "sourceRegion": 7}, "sourceRegion"),
        (["custom"], "event"),
    ])
    def test_malformed_fields(self, data, field):
        with pytest.raises(InvalidEvent) as exc_info:
            FanoutEvent.from_dict(data, default_source_region="us-east-1")
        assert exc_info.value.message.startswith(f"Invalid {field}:")

    def test_empty_source_region_uses_default(self):
        event = FanoutEvent.from_dict(
            {"type": "custom", "payload": {}, "sourceRegion": ""},
            default_source_region="eu-west-1",
        )
        assert event.source_region == "eu-west-1"

    def test_serialized_event_survives_queueing(self):
        event = order_status_event(target_regions=["eu-west-1"], priority=FanoutPriority.LOW)
        queued = json.loads(json.dumps(event.to_dict()))

        assert FanoutEvent.from_dict(queued, default_source_region="us-west-2") == event


class TestHandleRequest:

    async def test_success_headers(self, broadcaster):
        raw = json.dumps({
            "type": "order_status",
            "payload": {"order_id": 42, "status": "ready"},
            "sourceRegion": "us-east-1",
        }).encode()
        result = await broadcaster.handle_request(raw)

        assert result.status_code == 200
        assert result.body["success"] is True
        assert result.body["eventId"].startswith("evt_")
        assert {d["region"] for d in result.body["deliveries"]} == {"us-west-2", "eu-west-1"}
        assert all(d["latencyMs"] >= 0 for d in result.body["deliveries"])
        assert result.headers["X-Fanout-Regions"] == "us-west-2,eu-west-1"
        assert result.headers["X-Fanout-Success"] == "2"
        assert result.headers["X-Fanout-Total"] == "2"

    async def test_partial_failure_is_still_200(self, registry):
        broadcaster = make_broadcaster(registry, MockDeliveryTransport(failing_regions=["us-west-2"]))
        result = await broadcaster.handle_request(b'{"type": "custom", "payload": {"a": 1}}')

        failed = next(d for d in result.body["deliveries"] if d["region"] == "us-west-2")
        assert result.status_code == 200
        assert result.headers["X-Fanout-Success"] == "1"
        assert failed["success"] is False
        assert failed["error"] == "Channel error"

    async def test_missing_payload(self, broadcaster, transport):
        result = await broadcaster.handle_request(b'{"type": "order_status"}')

        assert result.status_code == 400
        assert result.body["success"] is False
        assert result.body["code"] == "invalid_event"
        assert transport.delivered == []

    async def test_invalid_json(self, broadcaster):
        result = await broadcaster.handle_request(b"not json")
        assert result.status_code == 500


class TestPublishers:

    async def test_inline_publisher(self, broadcaster, transport):
        publisher = InlineEventPublisher(broadcaster)
        await publisher.publish(order_status_event())
        await publisher.drain()

        assert sorted(transport.delivered_to()) == ["eu-west-1", "us-west-2"]

    async def test_disabled_publisher(self, transport):
        await DisabledEventPublisher().publish(order_status_event())
        assert transport.delivered == []

    async def test_celery_publisher_queues_serialized_event(self, monkeypatch):
        import edge_gateway.tasks

        queued = []

        class FakeTask:
            @staticmethod
            def delay(data):
                queued.append(data)

        monkeypatch.setattr(edge_gateway.tasks, "broadcast_event", FakeTask)
        event = order_status_event()
        await CeleryEventPublisher().publish(event)

        assert queued == [event.to_dict()]

    async def test_celery_publisher_swallows_broker_errors(self, monkeypatch):
        import edge_gateway.tasks

        class BrokenTask:
            @staticmethod
            def delay(data):
                raise ConnectionError("broker down")

        monkeypatch.setattr(edge_gateway.tasks, "broadcast_event", BrokenTask)
        await CeleryEventPublisher().publish(order_status_event())


class TestBroadcastTask:

    def test_runs_broadcast_from_serialized_event(self):
        from edge_gateway.tasks import broadcast_event

        event = order_status_event(target_regions=["us-west-2"])
        result = broadcast_event.apply(args=(event.to_dict(),)).get()

        assert result["success"] is True
        assert [d["region"] for d in result["deliveries"]] == ["us-west-2"]
        assert "task_id" in result

    def test_rejects_invalid_event(self):
        from edge_gateway.tasks import broadcast_event

        result = broadcast_event.apply(args=({"type": "order_status"},)).get()

        assert result["success"] is False
        assert "Missing required fields" in result["error"]
