"""
Tests for the SQL telemetry store against an in-memory SQLite database.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from edge_gateway.database import init_db
from edge_gateway.models import FanoutDelivery, FanoutEventLog
from edge_gateway.services.fanout import MockDeliveryTransport, RegionFanoutBroadcaster
from edge_gateway.services.fanout import FanoutEvent, FanoutEventType
from edge_gateway.services.telemetry import (
    FanoutRecord,
    RequestTelemetry,
    SqlTelemetryStore,
    StoredVersionConfig,
)


@pytest.fixture
async def session_maker():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_store(session_maker) -> SqlTelemetryStore:
    return SqlTelemetryStore(session_maker)


async def test_record_request(sql_store):
    await sql_store.record_request(RequestTelemetry(
        request_id="req_1", rpc="get_stores", app_version="1.0.0",
        resolved_version="v1", used_fallback=True, serving_region="us-east-1",
    ))
    await sql_store.record_request(RequestTelemetry(
        request_id="req_2", rpc=None, status_code=400, success=False,
        error_code="missing_required_field", error_message="Missing required field: rpc",
    ))

    rows = await sql_store.recent_requests()

    assert [r.request_id for r in rows] == ["req_2", "req_1"]
    assert rows[1].used_fallback is True
    assert rows[0].error_code == "missing_required_field"


async def test_log_fanout(sql_store, session_maker):
    await sql_store.log_fanout(FanoutRecord(
        event_id="evt_abc",
        event_type="order_status",
        source_region="us-east-1",
        target_regions=["us-west-2", "eu-west-1"],
        priority="normal",
        payload_size=31,
        success_count=1,
        total_latency_ms=52.5,
        deliveries=[
            {"region": "us-west-2", "success": True, "latency_ms": 12.0, "attempts": 1, "error": None},
            {"region": "eu-west-1", "success": False, "latency_ms": 50.0, "attempts": 3, "error": "Channel error"},
        ],
    ))

    async with session_maker() as session:
        event = (await session.execute(select(FanoutEventLog))).scalar_one()
        deliveries = (await session.execute(
            select(FanoutDelivery).order_by(FanoutDelivery.id)
        )).scalars().all()

    assert event.target_regions == ["us-west-2", "eu-west-1"]
    assert event.success_count == 1
    assert [d.target_region for d in deliveries] == ["us-west-2", "eu-west-1"]
    assert all(d.event_id == "evt_abc" for d in deliveries)
    assert deliveries[1].attempts == 3
    assert deliveries[1].error == "Channel error"


async def test_broadcaster_writes_event_log(sql_store, session_maker, registry):
    broadcaster = RegionFanoutBroadcaster(
        registry=registry,
        transport=MockDeliveryTransport(),
        store=sql_store,
        retry_delay_seconds=0,
    )
    result = await broadcaster.broadcast(
        FanoutEvent.create(FanoutEventType.MENU_UPDATED, {"item_id": 2}, "eu-west-1")
    )

    async with session_maker() as session:
        event = await session.scalar(
            select(FanoutEventLog).where(FanoutEventLog.event_id == result.event_id)
        )

    assert event.event_type == "menu_updated"
    assert event.target_regions == ["us-east-1", "us-west-2"]


async def test_active_version_round_trip(sql_store):
    assert await sql_store.load_active_version() is None

    first = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    second = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)
    await sql_store.save_active_version(StoredVersionConfig("v2", "v1", first))
    await sql_store.save_active_version(StoredVersionConfig("v4", "v2", second))

    stored = await sql_store.load_active_version()

    assert (stored.current, stored.fallback) == ("v4", "v2")
    assert stored.updated_at == second
    assert stored.updated_at.tzinfo is not None


async def test_health_check(sql_store):
    assert await sql_store.health_check() is True


async def test_health_check_reports_unreachable_database():
    engine = create_async_engine("sqlite+aiosqlite:////nonexistent/dir/telemetry.db")
    store = SqlTelemetryStore(async_sessionmaker(engine))

    assert await store.health_check() is False
    await engine.dispose()
