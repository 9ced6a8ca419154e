"""
SQLAlchemy Database Models

Persistence for the gateway's own records (never business data):
- Active/fallback API version configuration
- One telemetry row per gateway request
- Append-only fanout event log with per-region delivery outcomes

Version: 1.0.0
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from edge_gateway.database import Base


class ApiVersionConfig(Base):
    """
    Persisted active/fallback version pointers.

    A single row (id=1) that the version admin endpoint overwrites; loaded
    into the in-memory registry at startup.
    """
    __tablename__ = "api_version_config"

    id = Column(Integer, primary_key=True, default=1)
    current_version = Column(String(10), nullable=False)
    fallback_version = Column(String(10), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<ApiVersionConfig current={self.current_version} fallback={self.fallback_version}>"


class RequestLog(Base):
    """
    One row per gateway request, successful or not.
    """
    __tablename__ = "gateway_request_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(String(40), nullable=False, index=True)
    rpc = Column(String(100), nullable=True, index=True)

    # =========================================================================
    # CLIENT
    # =========================================================================
    app_name = Column(String(50), nullable=True)
    app_version = Column(String(30), nullable=True)
    client_id = Column(String(100), nullable=True)
    client_region = Column(String(30), nullable=True)

    # =========================================================================
    # RESOLUTION
    # =========================================================================
    requested_version = Column(String(20), nullable=True)
    resolved_version = Column(String(10), nullable=True, index=True)
    used_fallback = Column(Boolean, default=False, nullable=False)
    serving_region = Column(String(30), nullable=True)

    # =========================================================================
    # OUTCOME
    # =========================================================================
    status_code = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False, index=True)
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    execution_time_ms = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<RequestLog {self.request_id} {self.rpc}@{self.resolved_version} {self.status_code}>"


class FanoutEventLog(Base):
    """
    Append-only log of broadcast events.
    """
    __tablename__ = "fanout_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(String(40), nullable=False, unique=True, index=True)
    event_type = Column(String(30), nullable=False, index=True)
    source_region = Column(String(30), nullable=False)
    target_regions = Column(JSON, nullable=False)
    priority = Column(String(10), nullable=False, default="normal")
    payload_size = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    total_latency_ms = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    deliveries = relationship(
        "FanoutDelivery",
        back_populates="event",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<FanoutEventLog {self.event_id} {self.event_type} from {self.source_region}>"


class FanoutDelivery(Base):
    """
    Outcome of delivering one event to one region.
    """
    __tablename__ = "fanout_deliveries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(
        String(40),
        ForeignKey("fanout_events.event_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_region = Column(String(30), nullable=False)
    success = Column(Boolean, nullable=False)
    latency_ms = Column(Float, nullable=False, default=0.0)
    attempts = Column(Integer, nullable=False, default=1)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("FanoutEventLog", back_populates="deliveries")

    def __repr__(self):
        status = "ok" if self.success else "failed"
        return f"<FanoutDelivery {self.event_id} -> {self.target_region} {status}>"
