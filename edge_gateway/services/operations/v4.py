"""
API v4 Operations

AI menu intelligence and demand forecasting. The models run behind the
data backend; these handlers forward the payload unchanged.

Version: 1.0.0
"""

from edge_gateway.services.dispatch.base import OperationContext


def passthrough(function: str):
    """Build a handler that forwards the payload to a backend function."""

    async def handler(ctx: OperationContext, payload: dict):
        return await ctx.call(function, payload)

    handler.__name__ = function
    handler.__qualname__ = function
    return handler


OPERATIONS = {
    name: passthrough(name)
    for name in (
        "get_smart_menu",
        "get_similar_items",
        "get_substitute_items",
        "get_demand_forecast",
        "get_top_sellers_predicted",
        "explain_menu_performance",
        "predict_inventory_needs",
        "get_inventory_alerts",
    )
}

WRITE_OPERATIONS: set[str] = set()
