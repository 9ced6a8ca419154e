"""
Versioned Operation Catalog

Builds the operation table from the per-version handler modules. Each
module exports ``OPERATIONS`` (name -> handler) for the operations that
version implements itself, and ``WRITE_OPERATIONS`` for the ones that
change state (served by the primary region and broadcast to the others).

    v1  menu, stores, orders, rewards
    v2  customizations, itemized orders, metrics, feature flags
    v3  multi-region, customization tree, menu/store writes
    v4  AI menu and demand forecasting
    v5  operations intelligence (pricing, staffing, kitchen load)

Version: 1.0.0
"""

from functools import lru_cache

from edge_gateway.services.dispatch.table import OperationTable
from edge_gateway.services.operations import v1, v2, v3, v4, v5

VERSION_MODULES = {
    "v1": v1,
    "v2": v2,
    "v3": v3,
    "v4": v4,
    "v5": v5,
}


def build_operation_table() -> OperationTable:
    table = OperationTable()
    for version, module in VERSION_MODULES.items():
        table.register_many(version, module.OPERATIONS, module.WRITE_OPERATIONS)
    return table


@lru_cache()
def get_operation_table() -> OperationTable:
    """Get the process-wide operation table (built once)."""
    return build_operation_table()


__all__ = [
    "VERSION_MODULES",
    "build_operation_table",
    "get_operation_table",
]
