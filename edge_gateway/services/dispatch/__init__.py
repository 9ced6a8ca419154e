"""
Dispatch module initialization.
Exports request types, the operation table and the dispatcher.
"""

from edge_gateway.services.dispatch.base import (
    ClientContext,
    OperationContext,
    OperationRequest,
)
from edge_gateway.services.dispatch.dispatcher import DispatchResult, OperationDispatcher
from edge_gateway.services.dispatch.table import OperationTable, RegisteredOperation

__all__ = [
    "ClientContext",
    "OperationContext",
    "OperationRequest",
    "DispatchResult",
    "OperationDispatcher",
    "RegisteredOperation",
    "OperationTable",
]
