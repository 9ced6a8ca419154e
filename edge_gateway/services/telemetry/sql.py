"""
SQL Telemetry Store Implementation

Production implementation writing to the gateway's own tables through
SQLAlchemy's async session. Used when ENV_MODE=production or staging.

Each write opens a short-lived session and commits immediately; there is
no cross-request transaction.

Version: 1.0.0
"""

import logging
from datetime import timezone
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edge_gateway.database import get_session_maker
from edge_gateway.models import ApiVersionConfig, FanoutDelivery, FanoutEventLog, RequestLog
from edge_gateway.services.telemetry.base import (
    BaseTelemetryStore,
    FanoutRecord,
    RequestTelemetry,
    StoredVersionConfig,
)

logger = logging.getLogger(__name__)

CONFIG_ROW_ID = 1


class SqlTelemetryStore(BaseTelemetryStore):
    """
    Telemetry store backed by the relational database.

    Example:
        >>> store = SqlTelemetryStore()
        >>> await store.record_request(telemetry)
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or get_session_maker()
        logger.info("SqlTelemetryStore initialized")

    @property
    def provider_name(self) -> str:
        return "sql"

    async def record_request(self, telemetry: RequestTelemetry) -> None:
        async with self._session_maker() as session:
            session.add(RequestLog(
                request_id=telemetry.request_id,
                rpc=telemetry.rpc,
                app_name=telemetry.app_name,
                app_version=telemetry.app_version,
                client_id=telemetry.client_id,
                client_region=telemetry.client_region,
                requested_version=telemetry.requested_version,
                resolved_version=telemetry.resolved_version,
                used_fallback=telemetry.used_fallback,
                serving_region=telemetry.serving_region,
                status_code=telemetry.status_code,
                success=telemetry.success,
                error_code=telemetry.error_code,
                error_message=telemetry.error_message,
                execution_time_ms=telemetry.execution_time_ms,
            ))
            await session.commit()

    async def log_fanout(self, record: FanoutRecord) -> None:
        async with self._session_maker() as session:
            event = FanoutEventLog(
                event_id=record.event_id,
                event_type=record.event_type,
                source_region=record.source_region,
                target_regions=list(record.target_regions),
                priority=record.priority,
                payload_size=record.payload_size,
                success_count=record.success_count,
                total_latency_ms=record.total_latency_ms,
            )
            event.deliveries = [
                FanoutDelivery(
                    target_region=delivery["region"],
                    success=delivery["success"],
                    latency_ms=delivery.get("latency_ms", 0.0),
                    attempts=delivery.get("attempts", 1),
                    error=delivery.get("error"),
                )
                for delivery in record.deliveries
            ]
            session.add(event)
            await session.commit()

    async def load_active_version(self) -> Optional[StoredVersionConfig]:
        async with self._session_maker() as session:
            row = await session.get(ApiVersionConfig, CONFIG_ROW_ID)
            if row is None:
                return None
            updated_at = row.updated_at
            # SQLite drops tzinfo on the way back
            if updated_at.tzinfo is None:
                updated_at = updated_at.replace(tzinfo=timezone.utc)
            return StoredVersionConfig(
                current=row.current_version,
                fallback=row.fallback_version,
                updated_at=updated_at,
            )

    async def save_active_version(self, config: StoredVersionConfig) -> None:
        async with self._session_maker() as session:
            row = await session.get(ApiVersionConfig, CONFIG_ROW_ID)
            if row is None:
                row = ApiVersionConfig(id=CONFIG_ROW_ID)
                session.add(row)
            row.current_version = config.current
            row.fallback_version = config.fallback
            row.updated_at = config.updated_at
            await session.commit()

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Telemetry database unavailable: {e}")
            return False

    async def recent_requests(self, limit: int = 50) -> list[RequestLog]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(RequestLog).order_by(RequestLog.id.desc()).limit(limit)
            )
            return list(result.scalars())
