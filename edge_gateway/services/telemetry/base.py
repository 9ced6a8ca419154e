"""
Telemetry Store Abstract Base Class

Where the gateway and the fanout broadcaster write their records:
request telemetry, the fanout event log, and the persisted active/fallback
version configuration.

Writes are best-effort from the caller's point of view: callers log a
failed write and carry on, so a telemetry outage never fails a request.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class RequestTelemetry:
    """
    One gateway request, successful or not.

    Attributes:
        request_id: Generated request id (req_<ms>_<rand>)
        rpc: Operation name, if the body carried one
        app_name / app_version / client_id / client_region: Client context
        requested_version: Raw version the client asked for (may be invalid)
        resolved_version: Version actually served
        used_fallback: Whether the fallback version was served
        serving_region: Region that served the request
        status_code: HTTP status returned
        success: Whether data was returned without error
        error_code: Machine-readable error code on failure
        execution_time_ms: Gateway handling time
    """
    request_id: str
    rpc: Optional[str]
    app_name: Optional[str] = None
    app_version: Optional[str] = None
    client_id: Optional[str] = None
    client_region: Optional[str] = None
    requested_version: Optional[str] = None
    resolved_version: Optional[str] = None
    used_fallback: bool = False
    serving_region: Optional[str] = None
    status_code: int = 200
    success: bool = True
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FanoutRecord:
    """
    Event log entry for one broadcast plus its per-region outcomes.

    ``deliveries`` holds dicts with region, success, latency_ms,
    attempts and error.
    """
    event_id: str
    event_type: str
    source_region: str
    target_regions: list[str]
    priority: str
    payload_size: int
    success_count: int
    total_latency_ms: float
    deliveries: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StoredVersionConfig:
    """Persisted active/fallback pointers."""
    current: str
    fallback: str
    updated_at: datetime


class BaseTelemetryStore(ABC):
    """
    Abstract base class for telemetry stores.

    Example:
        >>> store = get_telemetry_store()
        >>> await store.record_request(RequestTelemetry(request_id="req_1", rpc="get_stores"))
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the store name (e.g. "memory", "sql")."""
        pass

    @abstractmethod
    async def record_request(self, telemetry: RequestTelemetry) -> None:
        """Append one request telemetry row."""
        pass

    @abstractmethod
    async def log_fanout(self, record: FanoutRecord) -> None:
        """Append one fanout event row and its delivery rows."""
        pass

    @abstractmethod
    async def load_active_version(self) -> Optional[StoredVersionConfig]:
        """Read the persisted version configuration, if any."""
        pass

    @abstractmethod
    async def save_active_version(self, config: StoredVersionConfig) -> None:
        """Persist the version configuration (overwrites)."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the store accepts writes."""
        pass
