"""
API v3 Operations

Multi-region contract: full customization tree and dietary tags on menu
items, region tracking on orders, feature availability in compatibility
checks, region health, and the business app's menu/store write
operations.

Version: 1.0.0
"""

from edge_gateway.services.dispatch.base import OperationContext
from edge_gateway.services.operations import v2
from edge_gateway.services.operations.common import menu_filters, pick, require
from edge_gateway.services.versioning.resolver import meets_min_version

MENU_ITEM_FIELDS = v2.MENU_ITEM_FIELDS + ("customization_groups", "dietary_tags")


def shape_menu_item(item: dict) -> dict:
    record = pick(item, MENU_ITEM_FIELDS)
    record["customizations"] = list(item.get("customizations") or [])
    record["customization_groups"] = list(item.get("customization_groups") or [])
    record["dietary_tags"] = list(item.get("dietary_tags") or [])
    return record


async def get_menu_items(ctx: OperationContext, payload: dict) -> list[dict]:
    items = await ctx.call("list_menu_items", menu_filters(payload))
    return [shape_menu_item(item) for item in items]


async def place_order(ctx: OperationContext, payload: dict) -> dict:
    order = await v2.create_order(ctx, {**payload, "region": ctx.region})
    return {
        "order_id": order["id"],
        "status": order["status"],
        "total": order.get("total"),
        "created_at": order.get("created_at"),
        "items_count": order.get("items_count", 0),
        "api_version": ctx.served_version,
        "region": ctx.region,
    }


async def check_compatibility(ctx: OperationContext, payload: dict) -> dict:
    result = await v2.check_compatibility(ctx, payload)
    flags = await ctx.call("get_feature_flags", {})
    result["features_available"] = sorted(
        flag["feature"]
        for flag in flags
        if flag.get("enabled")
        and meets_min_version(result["client_version"], flag.get("min_app_version", "0.0.0"))
    )
    return result


async def get_region_health(ctx: OperationContext, payload: dict) -> list[dict]:
    regions = ctx.registry.region_info()
    statuses = await ctx.call(
        "get_region_status", {"regions": [r.identifier for r in regions]}
    ) or {}
    return [
        {**region.to_dict(), "status": statuses.get(region.identifier, "unknown")}
        for region in regions
    ]


async def update_menu_item(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "item_id")
    item = await ctx.call("update_menu_item", payload)
    return shape_menu_item(item)


async def set_store_status(ctx: OperationContext, payload: dict) -> dict:
    require(payload, "store_id")
    if not isinstance(payload.get("is_open"), bool):
        raise ValueError("'is_open' must be true or false")
    store = await ctx.call(
        "set_store_status",
        {"store_id": payload["store_id"], "is_open": payload["is_open"]},
    )
    return pick(store, ("id", "name", "is_open", "updated_at"))


OPERATIONS = {
    "get_menu_items": get_menu_items,
    "place_order": place_order,
    "check_compatibility": check_compatibility,
    "get_region_health": get_region_health,
    "update_menu_item": update_menu_item,
    "set_store_status": set_store_status,
}

WRITE_OPERATIONS = {"place_order", "update_menu_item", "set_store_status"}
