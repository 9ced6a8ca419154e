"""
Operation Dispatcher

Executes a named operation at a resolved API version.

Lookup walks from the resolved version toward older ones and runs the
first implementation found, so a version only has to re-implement the
operations whose contract it changes. Payloads pass through untouched;
shape differences between versions are each handler's business.

    v3 resolved, "get_stores" requested:
        v3 defines get_stores?  no
        v2 defines get_stores?  no
        v1 defines get_stores?  yes -> run v1 handler

Errors:
    UnknownOperation  No version at or below the resolved one defines it
    OperationFailed   The handler (or the backend behind it) raised

Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from edge_gateway.core.errors import (
    DataBackendError,
    DispatchError,
    OperationFailed,
    UnknownOperation,
)
from edge_gateway.services.backend.base import BaseDataBackend
from edge_gateway.services.dispatch.base import (
    ClientContext,
    OperationContext,
    OperationRequest,
)
from edge_gateway.services.dispatch.table import OperationTable, RegisteredOperation
from edge_gateway.services.versioning.registry import VersionRegistry

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of a successful dispatch."""
    data: Any
    implementation_version: str
    write: bool = False


class OperationDispatcher:
    """
    Resolves (version, operation) to a handler and invokes it.

    Stateless apart from its collaborators; safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        registry: VersionRegistry,
        table: OperationTable,
        backend: BaseDataBackend,
    ):
        self.registry = registry
        self.table = table
        self.backend = backend

    def find(self, effective_version: str, name: str) -> Optional[RegisteredOperation]:
        """First implementation of ``name`` at or below ``effective_version``."""
        for version in self.registry.versions_at_or_below(effective_version):
            if name not in version.operations:
                continue
            entry = self.table.lookup(version.identifier, name)
            if entry is not None:
                return entry
        return None

    def is_write_operation(self, name: str) -> bool:
        return self.table.is_write(name)

    async def dispatch(
        self,
        effective_version: str,
        request: OperationRequest,
        client: Optional[ClientContext] = None,
        region: Optional[str] = None,
    ) -> DispatchResult:
        """
        Run ``request`` at ``effective_version``.

        Args:
            effective_version: Version chosen by the resolver
            request: Operation name and payload
            client: Caller context passed through to the handler
            region: Serving region (defaults to the primary region)

        Returns:
            DispatchResult with the handler's data

        Raises:
            UnknownOperation: Nothing in the version chain defines the operation
            OperationFailed: The implementation raised
        """
        entry = self.find(effective_version, request.name)
        if entry is None:
            raise UnknownOperation(request.name, effective_version)

        if entry.version != effective_version:
            logger.debug(
                f"Operation {request.name} falls through from "
                f"{effective_version} to {entry.version}"
            )

        context = OperationContext(
            backend=self.backend,
            registry=self.registry,
            served_version=effective_version,
            implementation_version=entry.version,
            region=region or self.registry.primary_region,
            client=client,
        )

        try:
            data = await entry.handler(context, request.payload)
        except DispatchError:
            raise
        except DataBackendError as e:
            raise OperationFailed(request.name, entry.version, str(e)) from e
        except Exception as e:
            logger.exception(f"Operation {request.name}@{entry.version} raised")
            raise OperationFailed(request.name, entry.version, str(e) or type(e).__name__) from e

        return DispatchResult(
            data=data,
            implementation_version=entry.version,
            write=entry.write,
        )
