"""
Region Fanout Factory

Usage:
    from edge_gateway.services.fanout import get_broadcaster

    broadcaster = get_broadcaster()
    result = await broadcaster.broadcast(event)

Environment Switching:
    - ENV_MODE=development -> MockDeliveryTransport (simulated regions)
    - ENV_MODE=staging     -> HttpDeliveryTransport (REGION_URLS)
    - ENV_MODE=production  -> HttpDeliveryTransport (REGION_URLS)

Version: 1.0.0
"""

import logging
from functools import lru_cache

from edge_gateway.core.config import FanoutPublisher, get_settings
from edge_gateway.services.fanout.base import (
    BaseDeliveryTransport,
    DeliveryResult,
    FanoutEvent,
    FanoutEventType,
    FanoutPriority,
    FanoutResult,
)
from edge_gateway.services.fanout.broadcaster import RegionFanoutBroadcaster, generate_event_id
from edge_gateway.services.fanout.http import HttpDeliveryTransport
from edge_gateway.services.fanout.mock import MockDeliveryTransport
from edge_gateway.services.fanout.publisher import (
    BaseEventPublisher,
    CeleryEventPublisher,
    DisabledEventPublisher,
    InlineEventPublisher,
)
from edge_gateway.services.telemetry import get_telemetry_store
from edge_gateway.services.versioning import get_version_registry

logger = logging.getLogger(__name__)


@lru_cache()
def get_delivery_transport() -> BaseDeliveryTransport:
    """Get the configured delivery transport instance."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Delivery Transport: Using MockDeliveryTransport (development mode)")
        return MockDeliveryTransport(min_latency=0.02, max_latency=0.12)

    logger.info(f"Delivery Transport: Using HttpDeliveryTransport ({settings.env_mode.value} mode)")
    return HttpDeliveryTransport()


@lru_cache()
def get_broadcaster() -> RegionFanoutBroadcaster:
    """Get the broadcaster wired to the registry, transport and telemetry store."""
    settings = get_settings()
    return RegionFanoutBroadcaster(
        registry=get_version_registry(),
        transport=get_delivery_transport(),
        store=get_telemetry_store(),
        timeout_seconds=settings.fanout_timeout_seconds,
        max_retries=settings.fanout_max_retries,
        retry_delay_seconds=settings.fanout_retry_delay_seconds,
    )


@lru_cache()
def get_event_publisher() -> BaseEventPublisher:
    """Get the publisher for state changes produced by write operations."""
    settings = get_settings()

    if settings.fanout_publisher == FanoutPublisher.CELERY:
        publisher = CeleryEventPublisher()
    elif settings.fanout_publisher == FanoutPublisher.DISABLED:
        publisher = DisabledEventPublisher()
    else:
        publisher = InlineEventPublisher(get_broadcaster())

    logger.info(f"Event Publisher: {publisher.mode}")
    return publisher


def reset_fanout() -> None:
    """Clear cached transport, broadcaster and publisher instances."""
    get_event_publisher.cache_clear()
    get_broadcaster.cache_clear()
    get_delivery_transport.cache_clear()
    logger.debug("Fanout cache cleared")


__all__ = [
    "get_delivery_transport",
    "get_broadcaster",
    "get_event_publisher",
    "reset_fanout",
    "generate_event_id",
    "BaseDeliveryTransport",
    "BaseEventPublisher",
    "CeleryEventPublisher",
    "DeliveryResult",
    "DisabledEventPublisher",
    "FanoutEvent",
    "FanoutEventType",
    "FanoutPriority",
    "FanoutResult",
    "HttpDeliveryTransport",
    "InlineEventPublisher",
    "MockDeliveryTransport",
    "RegionFanoutBroadcaster",
]
