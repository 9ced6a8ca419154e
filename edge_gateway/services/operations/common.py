"""
Shared helpers for versioned operation handlers.

Payloads arrive exactly as the client sent them; handlers check for the
fields they need and tolerate everything else being absent.
"""

from typing import Any, Iterable, Optional


def require(payload: dict, *fields: str) -> None:
    """Raise ValueError naming every missing field."""
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValueError(f"Missing required parameter(s): {', '.join(missing)}")


def pick(record: dict, fields: Iterable[str]) -> dict:
    """Project a backend record onto a contract's field list."""
    return {field: record.get(field) for field in fields}


def optional_list(payload: dict, name: str) -> Optional[list]:
    """
    Read an optional list field.

    Returns None when absent; raises ValueError when present but not a list.
    """
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"'{name}' must be a list")
    return value


def menu_filters(payload: dict) -> dict[str, Any]:
    return {k: payload[k] for k in ("store_id", "category", "available_only") if k in payload}


ORDER_FIELDS = (
    "store_id",
    "customer_name",
    "customer_email",
    "customer_phone",
    "subtotal",
    "tax",
    "total",
    "payment_method",
)


def order_params(payload: dict) -> dict[str, Any]:
    """Backend create_order arguments shared by every place_order version."""
    require(payload, "store_id")
    return {k: payload[k] for k in ORDER_FIELDS if k in payload}
