"""
Data Backend Factory

Provides a single entry point for obtaining the business-logic backend
that versioned operation handlers call into.

Usage:
    from edge_gateway.services.backend import get_data_backend

    backend = get_data_backend()
    stores = await backend.call("list_stores", {})

Environment Switching:
    - ENV_MODE=development -> MockDataBackend (in-memory seeded data)
    - ENV_MODE=staging     -> HttpDataBackend
    - ENV_MODE=production  -> HttpDataBackend

Version: 1.0.0
"""

import logging
from functools import lru_cache

from edge_gateway.core.config import get_settings
from edge_gateway.services.backend.base import BackendHealth, BaseDataBackend
from edge_gateway.services.backend.http import HttpDataBackend
from edge_gateway.services.backend.mock import MockDataBackend

logger = logging.getLogger(__name__)


@lru_cache()
def get_data_backend() -> BaseDataBackend:
    """
    Get the configured data backend instance.

    Returns:
        BaseDataBackend: MockDataBackend in development, HttpDataBackend otherwise

    Raises:
        ValueError: If not in development mode and the data API is not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Data Backend: Using MockDataBackend (development mode)")
        return MockDataBackend(min_latency=0.01, max_latency=0.05)

    logger.info(f"Data Backend: Using HttpDataBackend ({settings.env_mode.value} mode)")
    return HttpDataBackend()


def reset_data_backend() -> None:
    """
    Clear the cached data backend instance.

    The next call to get_data_backend() will create a new instance.
    """
    get_data_backend.cache_clear()
    logger.debug("Data backend cache cleared")


__all__ = [
    "get_data_backend",
    "reset_data_backend",
    "BackendHealth",
    "BaseDataBackend",
    "HttpDataBackend",
    "MockDataBackend",
]
