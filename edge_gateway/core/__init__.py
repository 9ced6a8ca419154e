"""
Core module initialization.
Exports configuration and logging utilities.
"""

from edge_gateway.core.config import (
    get_settings,
    setup_logging,
    Settings,
    EnvironmentMode,
    FanoutPublisher,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "FanoutPublisher",
]
