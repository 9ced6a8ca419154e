"""
Dispatch Request Types

Per-request value objects shared by the gateway, the resolver and the
dispatcher:

    ClientContext     Who is calling (app, app version, region, request id)
    OperationRequest  What they asked for (operation name + JSON payload)
    OperationContext  What a versioned handler gets to work with

All three are immutable and created fresh for every inbound request.

Version: 1.0.0
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from edge_gateway.core.errors import InvalidFieldValue, MissingRequiredField
from edge_gateway.services.backend.base import BaseDataBackend
from edge_gateway.services.versioning.registry import VersionRegistry


@dataclass(frozen=True)
class ClientContext:
    """
    Identity and capabilities of the client behind one request.

    Attributes:
        app_name: customer | business | web (other values kept for telemetry)
        app_version: Declared client app semantic version
        request_id: Generated per request, used for tracing
        requested_api_version: Explicit API version, if the client sent one
        client_region: Region the client says it is closest to
        client_id: Optional client identifier for telemetry
    """
    app_name: str
    app_version: str
    request_id: str
    requested_api_version: Optional[str] = None
    client_region: Optional[str] = None
    client_id: Optional[str] = None


@dataclass(frozen=True)
class OperationRequest:
    """
    A named operation and its JSON payload.

    Raises:
        MissingRequiredField: Empty operation name
        InvalidFieldValue: Payload is not a JSON-serializable object
    """
    name: str
    payload: dict = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise MissingRequiredField("rpc")

        payload = self.payload
        if payload is None:
            object.__setattr__(self, "payload", {})
            return
        if not isinstance(payload, dict):
            raise InvalidFieldValue("payload", "must be a JSON object")
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise InvalidFieldValue("payload", f"not JSON-serializable ({e})")


@dataclass(frozen=True)
class OperationContext:
    """
    Everything a versioned operation handler may use.

    Attributes:
        backend: Opaque business-logic backend
        registry: Version registry (read-only use)
        served_version: Version resolved for the request
        implementation_version: Version whose handler is running
            (older than served_version after a fallthrough)
        region: Region serving the request
        client: Caller's context, when dispatched from the gateway
    """
    backend: BaseDataBackend
    registry: VersionRegistry
    served_version: str
    implementation_version: str
    region: str
    client: Optional[ClientContext] = None

    @property
    def client_version(self) -> Optional[str]:
        return self.client.app_version if self.client else None

    async def call(self, function: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Invoke a backend function."""
        return await self.backend.call(function, params or {})
