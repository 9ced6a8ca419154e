"""
Pydantic Schemas for Request/Response Validation

Wire contracts of the gateway, fanout and version admin endpoints.
JSON keys on the gateway and fanout contracts are camelCase (requestId,
latencyMs, ...); models use snake_case attributes with aliases and are
serialized with ``by_alias=True``.

Version: 1.0.0
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# ENDPOINT RESULT
# =============================================================================

@dataclass
class EndpointResult:
    """
    Transport-neutral response produced by the gateway and the broadcaster.

    The FastAPI layer turns it into a JSONResponse unchanged.
    """
    status_code: int
    body: dict
    headers: dict[str, str] = field(default_factory=dict)


# =============================================================================
# GATEWAY
# =============================================================================

class GatewayRequest(BaseModel):
    """
    Request body of POST /api/gateway.

    Validated after JSON decoding so that unparseable bodies keep their
    own error path. A null payload is treated as an empty object.
    """
    rpc: str = Field(..., min_length=1, examples=["get_menu_items"])
    payload: Optional[dict[str, Any]] = None
    version: Optional[str] = Field(None, examples=["v2"])
    region: Optional[str] = Field(None, examples=["eu-west-1"])


class ResponseMeta(CamelModel):
    """Routing and tracing metadata attached to every envelope."""
    rpc: Optional[str] = None
    version: str
    fallback: bool
    region: str
    request_id: str = Field(..., alias="requestId")
    execution_time: float = Field(..., ge=0, alias="executionTime")


class ErrorDetail(BaseModel):
    code: str
    message: str


class GatewayResponse(CamelModel):
    """``{data, meta}`` plus ``error`` when the operation degraded."""
    data: Any = None
    error: Optional[ErrorDetail] = None
    meta: ResponseMeta

    def to_json_dict(self) -> dict:
        body = super().to_json_dict()
        if self.error is None:
            body.pop("error")
        return body


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


# =============================================================================
# FANOUT
# =============================================================================

class FanoutEventType(str, Enum):
    """State-change event kinds."""
    ORDER_STATUS = "order_status"
    ORDER_CREATED = "order_created"
    MENU_UPDATED = "menu_updated"
    STORE_STATUS = "store_status"
    CUSTOM = "custom"


class FanoutPriority(str, Enum):
    """Pass-through classification for downstream consumers."""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class FanoutRequest(CamelModel):
    """
    Request body of POST /api/fanout, and the serialized form of a queued
    FanoutEvent.
    """
    type: FanoutEventType = Field(..., examples=["order_status"])
    payload: dict[str, Any]
    source_region: Optional[str] = Field(None, alias="sourceRegion", examples=["us-east-1"])
    target_regions: Optional[list[str]] = Field(None, alias="targetRegions")
    priority: Optional[FanoutPriority] = Field(None, examples=["normal"])


class DeliveryOutcome(CamelModel):
    region: str
    success: bool
    latency_ms: float = Field(..., ge=0, alias="latencyMs")
    error: Optional[str] = None


class FanoutResponse(CamelModel):
    success: bool
    event_id: str = Field(..., alias="eventId")
    deliveries: list[DeliveryOutcome]
    total_latency_ms: float = Field(..., ge=0, alias="totalLatencyMs")


# =============================================================================
# VERSION ADMIN
# =============================================================================

class ActiveVersionResponse(BaseModel):
    current: str
    fallback: str
    updated_at: datetime


class ActiveVersionUpdate(BaseModel):
    """Request body of PUT /api/versions/active."""
    current: str = Field(..., examples=["v3"])
    fallback: str = Field(..., examples=["v1"])

    @field_validator("current", "fallback")
    @classmethod
    def normalize_version(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Version must not be empty")
        return v


class ApiVersionInfo(BaseModel):
    version: str
    status: str
    min_app_version: str
    operations: list[str]


class VersionListResponse(BaseModel):
    active: ActiveVersionResponse
    versions: list[ApiVersionInfo]


class RegionResponse(BaseModel):
    region: str
    name: str
    is_primary: bool


# =============================================================================
# HEALTH
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    data_backend: str
    delivery_transport: str
    telemetry_store: str
    redis: str
    active_version: str
    fallback_version: str
    timestamp: datetime
