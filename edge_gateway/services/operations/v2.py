"""
API v2 Operations

Adds menu customizations, itemized orders, reward history, store
metrics and feature flags. Everything else falls through to v1.

place_order accepts both the v2 payload (with ``items``) and the v1
payload (totals only), so a v2 gateway keeps serving older clients.

Version: 1.0.0
"""

from typing import Any

from edge_gateway.services.dispatch.base import OperationContext
from edge_gateway.services.operations import v1
from edge_gateway.services.operations.common import (
    menu_filters,
    optional_list,
    order_params,
    pick,
    require,
)
from edge_gateway.services.versioning.resolver import meets_min_version

MENU_ITEM_FIELDS = v1.MENU_ITEM_FIELDS + ("customizations",)
ORDER_ITEM_FIELDS = ("id", "menu_item_id", "item_name", "quantity", "customizations", "notes")


def client_version(ctx: OperationContext, payload: dict) -> str:
    return payload.get("app_version") or ctx.client_version or "0.0.0"


async def get_menu_items(ctx: OperationContext, payload: dict) -> list[dict]:
    items = await ctx.call("list_menu_items", menu_filters(payload))
    shaped = []
    for item in items:
        record = pick(item, MENU_ITEM_FIELDS)
        record["customizations"] = list(item.get("customizations") or [])
        shaped.append(record)
    return shaped


async def create_order(ctx: OperationContext, payload: dict) -> dict:
    """Backend order creation shared by the v2 and v3 contracts."""
    params = order_params(payload)
    items = optional_list(payload, "items")
    if items:
        params["items"] = [
            {
                "menu_item_id": entry.get("menu_item_id"),
                "quantity": entry.get("quantity", 1),
                "customizations": entry.get("customizations") or [],
                "notes": entry.get("notes"),
            }
            for entry in items
            if isinstance(entry, dict)
        ]
    return await ctx.call("create_order", params)


async def place_order(ctx: OperationContext, payload: dict) -> dict:
    order = await create_order(ctx, payload)
    return {
        "order_id": order["id"],
        "status": order["status"],
        "total": order.get("total"),
        "created_at": order.get("created_at"),
        "items_count": order.get("items_count", 0),
    }


async def get_order(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "order_id")
    order = await ctx.call("get_order", {"order_id": payload["order_id"]})
    items = await ctx.call("get_order_items", {"order_id": payload["order_id"]})
    return {
        "order": pick(order, v1.ORDER_FIELDS),
        "items": [pick(item, ORDER_ITEM_FIELDS) for item in items or []],
    }


async def get_rewards(ctx: OperationContext, payload: dict) -> dict[str, Any]:
    rewards = await v1.get_rewards(ctx, payload)
    rewards["history"] = await ctx.call(
        "get_reward_history", {"customer_email": payload["customer_email"]}
    )
    return rewards


async def get_store_metrics(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "store_id")
    metrics = await ctx.call("get_store_metrics", {
        "store_id": payload["store_id"],
        "date_range": payload.get("date_range", "today"),
    })
    return {
        "metrics": metrics,
        "api_version": ctx.served_version,
        "client_version": ctx.client_version,
    }


async def get_features(ctx: OperationContext, payload: dict) -> list[dict]:
    flags = await ctx.call("get_feature_flags", {})
    return [pick(flag, ("feature", "enabled", "min_app_version")) for flag in flags]


async def check_compatibility(ctx: OperationContext, payload: dict) -> dict:
    version = client_version(ctx, payload)
    minimum = ctx.registry.min_app_version_for(ctx.served_version)
    return {
        "compatible": meets_min_version(version, minimum),
        "min_required": minimum,
        "client_version": version,
        "api_version": ctx.served_version,
    }


OPERATIONS = {
    "get_menu_items": get_menu_items,
    "place_order": place_order,
    "get_order": get_order,
    "get_rewards": get_rewards,
    "get_store_metrics": get_store_metrics,
    "get_features": get_features,
    "check_compatibility": check_compatibility,
}

WRITE_OPERATIONS = {"place_order"}
