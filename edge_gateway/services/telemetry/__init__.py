"""
Telemetry Store Factory

Usage:
    from edge_gateway.services.telemetry import get_telemetry_store

    store = get_telemetry_store()
    await store.record_request(telemetry)

Environment Switching:
    - ENV_MODE=development -> MockTelemetryStore (in memory)
    - ENV_MODE=staging     -> SqlTelemetryStore
    - ENV_MODE=production  -> SqlTelemetryStore

Version: 1.0.0
"""

import logging
from functools import lru_cache

from edge_gateway.core.config import get_settings
from edge_gateway.services.telemetry.base import (
    BaseTelemetryStore,
    FanoutRecord,
    RequestTelemetry,
    StoredVersionConfig,
)
from edge_gateway.services.telemetry.mock import MockTelemetryStore
from edge_gateway.services.telemetry.sql import SqlTelemetryStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_telemetry_store() -> BaseTelemetryStore:
    """
    Get the configured telemetry store instance.

    Returns:
        BaseTelemetryStore: MockTelemetryStore in development, SqlTelemetryStore otherwise
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Telemetry Store: Using MockTelemetryStore (development mode)")
        return MockTelemetryStore()

    logger.info(f"Telemetry Store: Using SqlTelemetryStore ({settings.env_mode.value} mode)")
    return SqlTelemetryStore()


def reset_telemetry_store() -> None:
    """Clear the cached telemetry store instance."""
    get_telemetry_store.cache_clear()
    logger.debug("Telemetry store cache cleared")


__all__ = [
    "get_telemetry_store",
    "reset_telemetry_store",
    "BaseTelemetryStore",
    "FanoutRecord",
    "RequestTelemetry",
    "StoredVersionConfig",
    "MockTelemetryStore",
    "SqlTelemetryStore",
]
