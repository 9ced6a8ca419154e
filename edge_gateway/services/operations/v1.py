"""
API v1 Operations

The original contract, still served to the oldest customer apps:
flat menu items, flat orders, totals-only order placement.

Version: 1.0.0
"""

from typing import Any

from edge_gateway.services.dispatch.base import OperationContext
from edge_gateway.services.operations.common import (
    menu_filters,
    order_params,
    pick,
    require,
)

MENU_ITEM_FIELDS = ("id", "name", "description", "price", "category", "is_available")
STORE_FIELDS = ("id", "name", "address", "city", "state", "phone", "is_open")
ORDER_FIELDS = (
    "id", "store_id", "status", "customer_name", "customer_email",
    "subtotal", "tax", "total", "created_at",
)


async def get_menu_items(ctx: OperationContext, payload: dict) -> list[dict]:
    items = await ctx.call("list_menu_items", menu_filters(payload))
    return [pick(item, MENU_ITEM_FIELDS) for item in items]


async def get_stores(ctx: OperationContext, payload: dict) -> list[dict]:
    stores = await ctx.call("list_stores", {})
    return [pick(store, STORE_FIELDS) for store in stores]


async def get_store(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "store_id")
    store = await ctx.call("get_store", {"store_id": payload["store_id"]})
    return pick(store, STORE_FIELDS)


async def place_order(ctx: OperationContext, payload: dict) -> dict:
    # v1 orders carry totals only; an items array from a newer client is ignored
    order = await ctx.call("create_order", order_params(payload))
    return {
        "order_id": order["id"],
        "status": order["status"],
        "total": order.get("total"),
        "created_at": order.get("created_at"),
    }


async def get_order(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "order_id")
    order = await ctx.call("get_order", {"order_id": payload["order_id"]})
    return pick(order, ORDER_FIELDS)


async def update_order_status(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "order_id", "status")
    order = await ctx.call(
        "update_order_status",
        {"order_id": payload["order_id"], "status": payload["status"]},
    )
    return {
        "order_id": order["id"],
        "status": order["status"],
        "store_id": order.get("store_id"),
        "updated_at": order.get("updated_at"),
    }


async def cancel_order(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "order_id")
    return await update_order_status(ctx, {"order_id": payload["order_id"], "status": "cancelled"})


async def get_rewards(ctx: OperationContext, payload: dict) -> dict[str, Any]:
    require(payload, "customer_email")
    rewards = await ctx.call("get_rewards", {"customer_email": payload["customer_email"]})
    return pick(rewards, ("customer_email", "points", "tier"))


OPERATIONS = {
    "get_menu_items": get_menu_items,
    "get_stores": get_stores,
    "get_store": get_store,
    "place_order": place_order,
    "get_order": get_order,
    "update_order_status": update_order_status,
    "cancel_order": cancel_order,
    "get_rewards": get_rewards,
}

WRITE_OPERATIONS = {"place_order", "update_order_status", "cancel_order"}
