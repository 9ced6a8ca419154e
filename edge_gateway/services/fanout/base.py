"""
Region Fanout Types and Delivery Transport Base Class

Data contracts for cross-region event propagation and the interface every
delivery transport implements. Both MockDeliveryTransport and
HttpDeliveryTransport deliver one message to one region per call; the
broadcaster owns concurrency, timeouts and retries.

Version: 1.0.0
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from edge_gateway.core.errors import InvalidEvent
from edge_gateway.schemas import FanoutEventType, FanoutPriority, FanoutRequest


REQUIRED_EVENT_FIELDS = ("type", "payload")

# Tag added to the delivered message so subscribers can tell events apart
MESSAGE_TYPE_TAGS = {
    FanoutEventType.ORDER_STATUS: "order_status_update",
    FanoutEventType.ORDER_CREATED: "order_created",
    FanoutEventType.MENU_UPDATED: "menu_update",
    FanoutEventType.STORE_STATUS: "store_status",
}

DEFAULT_PRIORITIES = {
    FanoutEventType.STORE_STATUS: FanoutPriority.HIGH,
}


def describe_invalid_event(error: ValidationError) -> str:
    """One-line reason for a rejected event; empty type/payload count as missing."""
    problems = error.errors()
    for problem in problems:
        location = problem["loc"]
        if location and location[0] in REQUIRED_EVENT_FIELDS and (
            problem["type"] == "missing" or problem.get("input") in ("", None)
        ):
            return f"Missing required fields: {', '.join(REQUIRED_EVENT_FIELDS)}"

    first = problems[0]
    location = ".".join(str(part) for part in first["loc"]) or "event"
    return f"Invalid {location}: {first['msg']}"


@dataclass(frozen=True)
class FanoutEvent:
    """
    A state change to propagate to other regions.

    Attributes:
        type: Event kind
        payload: Event data (JSON object)
        source_region: Region where the change happened (never a target)
        target_regions: Explicit targets; None or empty means "every other region"
        priority: high | normal | low
    """
    type: FanoutEventType
    payload: dict
    source_region: str
    target_regions: Optional[tuple[str, ...]] = None
    priority: FanoutPriority = FanoutPriority.NORMAL

    @classmethod
    def create(
        cls,
        event_type: FanoutEventType,
        payload: dict,
        source_region: str,
        target_regions: Optional[list[str]] = None,
        priority: Optional[FanoutPriority] = None,
    ) -> "FanoutEvent":
        """Build an event, applying the per-type default priority."""
        return cls(
            type=event_type,
            payload=payload,
            source_region=source_region,
            target_regions=tuple(target_regions) if target_regions is not None else None,
            priority=priority or DEFAULT_PRIORITIES.get(event_type, FanoutPriority.NORMAL),
        )

    @classmethod
    def from_dict(cls, data: Any, default_source_region: str) -> "FanoutEvent":
        """
        Validate a fanout request body.

        Accepts ``{type, payload, sourceRegion?, targetRegions?, priority?}``.

        Raises:
            InvalidEvent: Missing type/payload or a malformed field
        """
        try:
            request = FanoutRequest.model_validate(data)
        except ValidationError as e:
            raise InvalidEvent(describe_invalid_event(e)) from e

        return cls.create(
            event_type=request.type,
            payload=request.payload,
            source_region=request.source_region or default_source_region,
            target_regions=request.target_regions,
            priority=request.priority,
        )

    def to_dict(self) -> dict:
        """Serialize in the same shape ``from_dict`` accepts."""
        data = {
            "type": self.type.value,
            "payload": self.payload,
            "sourceRegion": self.source_region,
            "priority": self.priority.value,
        }
        if self.target_regions is not None:
            data["targetRegions"] = list(self.target_regions)
        return data

    @property
    def type_tag(self) -> str:
        return MESSAGE_TYPE_TAGS.get(self.type, self.type.value)

    @property
    def payload_size(self) -> int:
        return len(json.dumps(self.payload, default=str).encode("utf-8"))


@dataclass
class DeliveryResult:
    """
    Outcome of delivering one event to one region.

    Attributes:
        region: Target region
        success: Whether any attempt succeeded
        latency_ms: Time from first attempt to final outcome
        error: Last error detail if every attempt failed
        attempts: Number of attempts made
    """
    region: str
    success: bool
    latency_ms: float
    error: Optional[str] = None
    attempts: int = 1

    def to_dict(self) -> dict:
        data = {
            "region": self.region,
            "success": self.success,
            "latencyMs": round(self.latency_ms, 2),
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    def to_record(self) -> dict:
        return {
            "region": self.region,
            "success": self.success,
            "latency_ms": self.latency_ms,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class FanoutResult:
    """
    Aggregate outcome of one broadcast.

    ``success`` is True whenever the event was accepted and broadcast;
    per-region outcomes are in ``deliveries``.
    """
    success: bool
    event_id: str
    deliveries: list[DeliveryResult] = field(default_factory=list)
    total_latency_ms: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for d in self.deliveries if d.success)

    @property
    def target_regions(self) -> list[str]:
        return [d.region for d in self.deliveries]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "eventId": self.event_id,
            "deliveries": [d.to_dict() for d in self.deliveries],
            "totalLatencyMs": round(self.total_latency_ms, 2),
        }


class BaseDeliveryTransport(ABC):
    """
    Abstract base class for delivery transports.

    ``deliver`` sends one message to one region and either returns
    normally or raises; it is not responsible for timeouts or retries.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the transport name (e.g. "mock", "http")."""
        pass

    @abstractmethod
    async def deliver(self, region: str, event_name: str, message: dict) -> None:
        """
        Deliver a message to a region.

        Args:
            region: Target region identifier
            event_name: Event type the subscribers listen for
            message: Enriched event payload

        Raises:
            DeliveryError: The region rejected or could not receive the message
        """
        pass

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None
