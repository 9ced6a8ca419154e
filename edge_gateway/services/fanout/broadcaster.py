"""
Region Fanout Broadcaster

Propagates a state-change event to other deployment regions and reports
what happened in each one.

Flow for one event:
    1. Work out the targets: non-empty targetRegions (unknown ones dropped)
       or every known region, never including the source region.
    2. Deliver to all targets concurrently. Each region gets its own
       timeout per attempt and its own retries with linear backoff, so a
       slow or unreachable region only ever costs its own latency.
    3. Join on all deliveries; timeouts and errors become failed results.
    4. Append an event log row plus one row per delivery (best-effort).

A broadcast with failed regions is still a successful call: ``success``
reports that the event was accepted, per-region outcomes are in
``deliveries``.

Version: 1.0.0
"""

import asyncio
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from edge_gateway.core.errors import DeliveryError, InvalidEvent, MalformedRequest
from edge_gateway.schemas import EndpointResult
from edge_gateway.services.fanout.base import (
    BaseDeliveryTransport,
    DeliveryResult,
    FanoutEvent,
    FanoutResult,
)
from edge_gateway.services.telemetry.base import BaseTelemetryStore, FanoutRecord
from edge_gateway.services.versioning.registry import VersionRegistry

logger = logging.getLogger(__name__)


def generate_event_id() -> str:
    return f"evt_{uuid.uuid4().hex}"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RegionFanoutBroadcaster:
    """
    Concurrent per-region event delivery with isolated failures.

    Attributes:
        timeout_seconds: Limit for a single delivery attempt
        max_retries: Extra attempts after the first failure
        retry_delay_seconds: Base backoff; attempt n waits delay * n

    Example:
        >>> broadcaster = RegionFanoutBroadcaster(registry, MockDeliveryTransport(), store)
        >>> event = FanoutEvent.create(FanoutEventType.ORDER_STATUS,
        ...                            {"order_id": 42, "status": "ready"}, "us-east-1")
        >>> result = await broadcaster.broadcast(event)
        >>> [d.region for d in result.deliveries]
        ['us-west-2', 'eu-west-1', 'ap-southeast-1']
    """

    def __init__(
        self,
        registry: VersionRegistry,
        transport: BaseDeliveryTransport,
        store: Optional[BaseTelemetryStore] = None,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
    ):
        self.registry = registry
        self.transport = transport
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, max_retries)
        self.retry_delay_seconds = max(0.0, retry_delay_seconds)

    # =========================================================================
    # TARGETING
    # =========================================================================

    def target_regions(self, event: FanoutEvent) -> list[str]:
        """Regions an event is delivered to; an empty target list means every region."""
        known = self.registry.list_regions()

        if event.target_regions:
            requested = list(dict.fromkeys(event.target_regions))
            unknown = [r for r in requested if r not in known]
            if unknown:
                logger.warning(f"Dropping unknown fanout target regions: {unknown}")
            candidates = [r for r in requested if r in known]
        else:
            candidates = known

        return [r for r in candidates if r != event.source_region]

    @staticmethod
    def build_message(event: FanoutEvent, event_id: str) -> dict:
        """Event payload enriched with its type tag and fanout metadata."""
        timestamp = datetime.now(timezone.utc).isoformat()
        return {
            **event.payload,
            "_type": event.type_tag,
            "timestamp": timestamp,
            "_fanout": {
                "sourceRegion": event.source_region,
                "eventId": event_id,
                "priority": event.priority.value,
                "timestamp": timestamp,
            },
        }

    # =========================================================================
    # DELIVERY
    # =========================================================================

    async def _deliver(self, region: str, event_name: str, message: dict) -> DeliveryResult:
        start = time.perf_counter()
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                await asyncio.wait_for(
                    self.transport.deliver(region, event_name, message),
                    timeout=self.timeout_seconds,
                )
                return DeliveryResult(
                    region=region,
                    success=True,
                    latency_ms=_elapsed_ms(start),
                    attempts=attempt + 1,
                )
            except asyncio.TimeoutError:
                last_error = f"Timeout after {self.timeout_seconds:g}s"
            except DeliveryError as e:
                last_error = str(e)
            except Exception as e:
                # One region's transport fault must not reach the other deliveries
                logger.exception(f"Unexpected delivery error for {region}")
                last_error = f"{type(e).__name__}: {e}"

            if attempt < self.max_retries:
                logger.debug(f"Delivery to {region} failed ({last_error}); retry {attempt + 1}")
                await asyncio.sleep(self.retry_delay_seconds * (attempt + 1))

        logger.warning(f"Delivery to {region} failed after {self.max_retries + 1} attempts: {last_error}")
        return DeliveryResult(
            region=region,
            success=False,
            latency_ms=_elapsed_ms(start),
            error=last_error,
            attempts=self.max_retries + 1,
        )

    async def broadcast(self, event: FanoutEvent) -> FanoutResult:
        """
        Deliver an event to its target regions.

        Returns:
            FanoutResult with one DeliveryResult per target region
        """
        event_id = generate_event_id()
        start = time.perf_counter()

        targets = self.target_regions(event)
        message = self.build_message(event, event_id)

        deliveries = list(await asyncio.gather(
            *(self._deliver(region, event.type.value, message) for region in targets)
        ))

        result = FanoutResult(
            success=True,
            event_id=event_id,
            deliveries=deliveries,
            total_latency_ms=_elapsed_ms(start),
        )

        logger.info(
            f"Fanout {event_id} {event.type.value} from {event.source_region}: "
            f"{result.success_count}/{len(deliveries)} regions in {result.total_latency_ms:.0f}ms"
        )

        await self._log(event, result)
        return result

    async def _log(self, event: FanoutEvent, result: FanoutResult) -> None:
        if self.store is None:
            return
        record = FanoutRecord(
            event_id=result.event_id,
            event_type=event.type.value,
            source_region=event.source_region,
            target_regions=result.target_regions,
            priority=event.priority.value,
            payload_size=event.payload_size,
            success_count=result.success_count,
            total_latency_ms=result.total_latency_ms,
            deliveries=[d.to_record() for d in result.deliveries],
        )
        try:
            await self.store.log_fanout(record)
        except Exception as e:
            logger.error(f"Failed to log fanout event {result.event_id}: {e}")

    # =========================================================================
    # HTTP BOUNDARY
    # =========================================================================

    def parse_event(self, raw_body: bytes) -> FanoutEvent:
        """
        Parse a fanout request body.

        Raises:
            MalformedRequest: Body is not valid JSON
            InvalidEvent: Missing type/payload or malformed fields
        """
        try:
            data = json.loads(raw_body or b"")
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedRequest(f"Invalid JSON body: {e}") from e
        return FanoutEvent.from_dict(data, default_source_region=self.registry.primary_region)

    async def handle_request(self, raw_body: bytes) -> EndpointResult:
        """Validate, broadcast and shape the HTTP response for one fanout call."""
        try:
            event = self.parse_event(raw_body)
        except (MalformedRequest, InvalidEvent) as e:
            logger.warning(f"Rejected fanout request: {e.message}")
            return EndpointResult(
                status_code=e.status_code,
                body={"success": False, "error": e.message, "code": e.code},
            )

        result = await self.broadcast(event)
        return EndpointResult(
            status_code=200,
            body=result.to_dict(),
            headers={
                "X-Fanout-Regions": ",".join(result.target_regions),
                "X-Fanout-Success": str(result.success_count),
                "X-Fanout-Total": str(len(result.deliveries)),
            },
        )
