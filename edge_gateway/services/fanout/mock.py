"""
Mock Delivery Transport Implementation

Simulates per-region realtime delivery without any network. Used in
development mode and by tests to reproduce partial failures:

    - failing_regions: every attempt raises DeliveryError
    - stalled_regions: every attempt hangs until the broadcaster's timeout
    - flaky_regions:   the first N attempts fail, later ones succeed
    - failure_rate:    random failures anywhere

Version: 1.0.0
"""

import asyncio
import logging
import random
from collections import defaultdict
from typing import Iterable, Optional

from edge_gateway.core.errors import DeliveryError
from edge_gateway.services.fanout.base import BaseDeliveryTransport

logger = logging.getLogger(__name__)


class MockDeliveryTransport(BaseDeliveryTransport):
    """
    Mock implementation of the delivery transport.

    Example:
        >>> transport = MockDeliveryTransport(failing_regions=["eu-west-1"])
        >>> await transport.deliver("us-west-2", "order_status", {"order_id": 42})
        >>> transport.delivered[0][0]
        'us-west-2'
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        failing_regions: Optional[Iterable[str]] = None,
        stalled_regions: Optional[Iterable[str]] = None,
        flaky_regions: Optional[dict[str, int]] = None,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.failing_regions = set(failing_regions or ())
        self.stalled_regions = set(stalled_regions or ())
        self.flaky_regions = dict(flaky_regions or {})

        self.delivered: list[tuple[str, str, dict]] = []
        self.attempts: dict[str, int] = defaultdict(int)

        logger.info(
            f"MockDeliveryTransport initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def deliver(self, region: str, event_name: str, message: dict) -> None:
        self.attempts[region] += 1

        if region in self.stalled_regions:
            # Never completes; the broadcaster's timeout cancels it
            await asyncio.Event().wait()

        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

        if region in self.failing_regions:
            raise DeliveryError(region, "Channel error")

        if self.attempts[region] <= self.flaky_regions.get(region, 0):
            raise DeliveryError(region, f"Transient channel error (attempt {self.attempts[region]})")

        if self.failure_rate > 0 and random.random() < self.failure_rate:
            raise DeliveryError(region, "Simulated delivery failure")

        self.delivered.append((region, event_name, message))

    def delivered_to(self) -> list[str]:
        return [region for region, _, _ in self.delivered]
