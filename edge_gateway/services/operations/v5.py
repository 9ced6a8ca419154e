"""
API v5 Operations

Autonomous operations: dynamic pricing, staffing, kitchen load, wait time
prediction and menu profitability. Forwarded to the data backend as-is.

Version: 1.0.0
"""

from edge_gateway.services.operations.v4 import passthrough

OPERATIONS = {
    name: passthrough(name)
    for name in (
        "get_dynamic_pricing",
        "get_staffing_recommendations",
        "get_kitchen_load",
        "predict_wait_time",
        "get_menu_profitability",
    )
}

WRITE_OPERATIONS: set[str] = set()
