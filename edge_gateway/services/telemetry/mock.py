"""
Mock Telemetry Store Implementation

Keeps telemetry in memory. Used in development mode and by tests, which
inspect ``requests`` and ``fanout_events`` directly.

Version: 1.0.0
"""

import logging
from collections import deque
from typing import Optional

from edge_gateway.services.telemetry.base import (
    BaseTelemetryStore,
    FanoutRecord,
    RequestTelemetry,
    StoredVersionConfig,
)

logger = logging.getLogger(__name__)


class MockTelemetryStore(BaseTelemetryStore):
    """
    In-memory telemetry store.

    Attributes:
        max_requests: Oldest request rows are dropped beyond this many
        fail_writes: Make every write raise (exercises the best-effort paths)
    """

    def __init__(self, max_requests: int = 10_000, fail_writes: bool = False):
        self.requests: deque[RequestTelemetry] = deque(maxlen=max_requests)
        self.fanout_events: list[FanoutRecord] = []
        self.version_config: Optional[StoredVersionConfig] = None
        self.fail_writes = fail_writes

        logger.info(f"MockTelemetryStore initialized (max_requests={max_requests})")

    @property
    def provider_name(self) -> str:
        return "memory"

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise RuntimeError("Simulated telemetry store failure")

    async def record_request(self, telemetry: RequestTelemetry) -> None:
        self._check_writable()
        self.requests.append(telemetry)

    async def log_fanout(self, record: FanoutRecord) -> None:
        self._check_writable()
        self.fanout_events.append(record)

    async def load_active_version(self) -> Optional[StoredVersionConfig]:
        return self.version_config

    async def save_active_version(self, config: StoredVersionConfig) -> None:
        self._check_writable()
        self.version_config = config

    async def health_check(self) -> bool:
        return not self.fail_writes

    def find_request(self, request_id: str) -> Optional[RequestTelemetry]:
        for row in self.requests:
            if row.request_id == request_id:
                return row
        return None
