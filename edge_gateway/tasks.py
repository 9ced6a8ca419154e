"""
Celery Tasks
Background broadcast of state-change events queued by the gateway
(FANOUT_PUBLISHER=celery).
"""

import asyncio
import logging
import time

from edge_gateway.celery_worker import celery_app
from edge_gateway.core.config import get_settings
from edge_gateway.core.errors import InvalidEvent
from edge_gateway.database import dispose_engine
from edge_gateway.services.fanout import (
    FanoutEvent,
    HttpDeliveryTransport,
    MockDeliveryTransport,
    RegionFanoutBroadcaster,
)
from edge_gateway.services.telemetry import MockTelemetryStore, SqlTelemetryStore
from edge_gateway.services.versioning import get_version_registry

logger = logging.getLogger(__name__)


def build_task_broadcaster() -> RegionFanoutBroadcaster:
    """
    Broadcaster with its own transport and store.

    Each task runs in a fresh event loop, so nothing bound to a previous
    loop (HTTP client, DB pool) can be reused.
    """
    settings = get_settings()
    if settings.is_development:
        transport = MockDeliveryTransport(min_latency=0.02, max_latency=0.12)
        store = MockTelemetryStore()
    else:
        transport = HttpDeliveryTransport()
        store = SqlTelemetryStore()

    return RegionFanoutBroadcaster(
        registry=get_version_registry(),
        transport=transport,
        store=store,
        timeout_seconds=settings.fanout_timeout_seconds,
        max_retries=settings.fanout_max_retries,
        retry_delay_seconds=settings.fanout_retry_delay_seconds,
    )


async def _broadcast(event: FanoutEvent) -> dict:
    broadcaster = build_task_broadcaster()
    try:
        result = await broadcaster.broadcast(event)
        return result.to_dict()
    finally:
        await broadcaster.transport.close()
        await dispose_engine()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(ConnectionError, OSError),
    retry_backoff=True
)
def broadcast_event(self, event_data: dict) -> dict:
    """
    Broadcast a serialized FanoutEvent to its target regions.

    Per-region retries happen inside the broadcaster; the task itself
    only retries when the broadcast could not run at all.

    Args:
        event_data: FanoutEvent.to_dict() output

    Returns:
        dict: FanoutResult.to_dict() plus task bookkeeping
    """
    task_id = self.request.id
    settings = get_settings()

    try:
        event = FanoutEvent.from_dict(event_data, default_source_region=settings.primary_region)
    except InvalidEvent as e:
        logger.error(f"Task {task_id}: rejected fanout event: {e.message}")
        return {"success": False, "error": e.message, "task_id": task_id}

    logger.info(f"Task {task_id}: broadcasting {event.type.value} from {event.source_region}")
    start_time = time.time()

    result = asyncio.run(_broadcast(event))

    result["task_id"] = task_id
    result["processing_time_seconds"] = round(time.time() - start_time, 3)
    return result
