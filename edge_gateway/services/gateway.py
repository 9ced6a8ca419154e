"""
Request Gateway

HTTP-facing entry point for every versioned RPC call:

    1. Parse the body and the client headers into a ClientContext and an
       OperationRequest (unparseable body -> 500, missing rpc -> 400).
    2. Resolve the API version (never fails, may fall back).
    3. Pick the serving region (writes always go to the primary region).
    4. Dispatch, time it, and wrap the result in the response envelope:

        {"data": ..., "meta": {"rpc", "version", "fallback", "region",
                               "requestId", "executionTime"}}

       Business-level failures (unknown operation, failed operation) keep
       HTTP 200 and add an "error" object next to "data".
    5. Record one telemetry row whatever happened.
    6. Publish a state-change event for successful writes.

The gateway keeps no per-request state on the instance; the only shared
mutable state it reads is the registry's active-version snapshot.

Headers:
    X-App-Version    Client app semantic version (default 1.0.0)
    X-App-Name       customer | business | web (default web)
    X-Api-Version    Explicit API version (body "version" wins)
    X-Client-Region  Preferred read region (body "region" wins)
    X-Client-Id      Opaque client identifier for telemetry

Version: 1.0.0
"""

import json
import logging
import random
import string
import time
from functools import lru_cache
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from edge_gateway.core.errors import (
    ClientRequestError,
    DispatchError,
    InvalidFieldValue,
    MalformedRequest,
    MissingRequiredField,
)
from edge_gateway.schemas import (
    EndpointResult,
    ErrorDetail,
    GatewayRequest,
    GatewayResponse,
    ResponseMeta,
)
from edge_gateway.services.backend import get_data_backend
from edge_gateway.services.dispatch import ClientContext, OperationDispatcher, OperationRequest
from edge_gateway.services.fanout import get_event_publisher
from edge_gateway.services.fanout.base import FanoutEvent, FanoutEventType
from edge_gateway.services.fanout.publisher import BaseEventPublisher
from edge_gateway.services.operations import get_operation_table
from edge_gateway.services.telemetry import (
    BaseTelemetryStore,
    RequestTelemetry,
    get_telemetry_store,
)
from edge_gateway.services.versioning import (
    CompatibilityResolver,
    VersionRegistry,
    get_resolver,
    get_version_registry,
)

logger = logging.getLogger(__name__)


DEFAULT_APP_VERSION = "1.0.0"
DEFAULT_APP_NAME = "web"
DEFAULT_CLIENT_ID = "unknown"

# State change published after a successful write
WRITE_EVENT_TYPES = {
    "place_order": FanoutEventType.ORDER_CREATED,
    "update_order_status": FanoutEventType.ORDER_STATUS,
    "cancel_order": FanoutEventType.ORDER_STATUS,
    "update_menu_item": FanoutEventType.MENU_UPDATED,
    "set_store_status": FanoutEventType.STORE_STATUS,
}

_REQUEST_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_request_id() -> str:
    """Request id of the form ``req_<epoch-ms>_<7 base36 chars>``."""
    suffix = "".join(random.choices(_REQUEST_ID_ALPHABET, k=7))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class RequestGateway:
    """
    Orchestrates resolution, dispatch, telemetry and event publishing.

    Example:
        >>> gateway = get_request_gateway()
        >>> result = await gateway.handle(
        ...     b'{"rpc": "get_stores", "payload": {}}',
        ...     {"X-App-Version": "1.4.0", "X-App-Name": "customer"},
        ... )
        >>> result.body["meta"]["version"]
        'v3'
    """

    def __init__(
        self,
        registry: VersionRegistry,
        resolver: CompatibilityResolver,
        dispatcher: OperationDispatcher,
        telemetry: Optional[BaseTelemetryStore] = None,
        event_publisher: Optional[BaseEventPublisher] = None,
    ):
        self.registry = registry
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.telemetry = telemetry
        self.event_publisher = event_publisher

    # =========================================================================
    # PARSING
    # =========================================================================

    @staticmethod
    def parse_body(raw_body: bytes) -> dict:
        """
        Decode the JSON body.

        Raises:
            MalformedRequest: Not JSON, or not a JSON object
        """
        try:
            body = json.loads(raw_body or b"")
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedRequest(f"Invalid JSON body: {e}") from e
        if not isinstance(body, dict):
            raise MalformedRequest("Request body must be a JSON object")
        return body

    @staticmethod
    def parse_envelope(body: dict) -> GatewayRequest:
        """
        Validate the decoded body against the gateway request schema.

        Raises:
            MissingRequiredField: rpc absent, empty or not a string
            InvalidFieldValue: payload, version or region has the wrong type
        """
        try:
            return GatewayRequest.model_validate(body)
        except ValidationError as e:
            problems = e.errors()
            if any(p["loc"] and p["loc"][0] == "rpc" for p in problems):
                raise MissingRequiredField("rpc") from e
            first = problems[0]
            field_name = ".".join(str(part) for part in first["loc"]) or "body"
            raise InvalidFieldValue(field_name, first["msg"]) from e

    def client_context(
        self,
        headers: Mapping[str, str],
        envelope: GatewayRequest,
        request_id: str,
    ) -> ClientContext:
        """Build the client context; ``headers`` must have lowercase names."""
        requested = envelope.version or headers.get("x-api-version") or None

        return ClientContext(
            app_name=headers.get("x-app-name") or DEFAULT_APP_NAME,
            app_version=headers.get("x-app-version") or DEFAULT_APP_VERSION,
            request_id=request_id,
            requested_api_version=requested,
            client_region=headers.get("x-client-region") or self.registry.primary_region,
            client_id=headers.get("x-client-id") or DEFAULT_CLIENT_ID,
        )

    def select_region(self, rpc: str, envelope: GatewayRequest, client: ClientContext) -> str:
        """Writes go to the primary region; reads honor a known preferred region."""
        if self.dispatcher.is_write_operation(rpc):
            return self.registry.primary_region
        for candidate in (envelope.region, client.client_region):
            if self.registry.is_known_region(candidate):
                return candidate
        return self.registry.primary_region

    # =========================================================================
    # HANDLING
    # =========================================================================

    async def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> EndpointResult:
        start = time.perf_counter()
        request_id = generate_request_id()
        headers = {k.lower(): v for k, v in headers.items()}

        telemetry = RequestTelemetry(
            request_id=request_id,
            rpc=None,
            app_name=headers.get("x-app-name") or DEFAULT_APP_NAME,
            app_version=headers.get("x-app-version") or DEFAULT_APP_VERSION,
            client_id=headers.get("x-client-id") or DEFAULT_CLIENT_ID,
            client_region=headers.get("x-client-region"),
            requested_version=headers.get("x-api-version"),
        )

        try:
            result = await self._handle(raw_body, headers, request_id, start, telemetry)
        except (MalformedRequest, ClientRequestError) as e:
            if isinstance(e, MalformedRequest):
                logger.error(f"[{request_id}] Malformed request: {e.message}")
            else:
                logger.warning(f"[{request_id}] Rejected request: {e.message}")
            result = self._error_result(e.status_code, e.message, e.code, request_id)
            telemetry.error_code = e.code
            telemetry.error_message = e.message
        except Exception as e:
            logger.exception(f"[{request_id}] Unexpected gateway error")
            result = self._error_result(500, "Internal server error", "internal_error", request_id)
            telemetry.error_code = "internal_error"
            telemetry.error_message = str(e)

        telemetry.status_code = result.status_code
        telemetry.success = result.status_code == 200 and telemetry.error_code is None
        telemetry.execution_time_ms = _elapsed_ms(start)
        await self._record(telemetry)
        return result

    async def _handle(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        request_id: str,
        start: float,
        telemetry: RequestTelemetry,
    ) -> EndpointResult:
        # Missing rpc fails here, before any version negotiation
        envelope = self.parse_envelope(self.parse_body(raw_body))
        client = self.client_context(headers, envelope, request_id)
        telemetry.requested_version = client.requested_api_version

        request = OperationRequest(name=envelope.rpc, payload=envelope.payload)
        telemetry.rpc = request.name

        resolution = self.resolver.resolve(client)
        region = self.select_region(request.name, envelope, client)
        telemetry.resolved_version = resolution.version
        telemetry.used_fallback = resolution.used_fallback
        telemetry.serving_region = region

        data: Any = None
        error: Optional[ErrorDetail] = None
        dispatch_result = None
        try:
            dispatch_result = await self.dispatcher.dispatch(
                resolution.version, request, client=client, region=region
            )
            data = dispatch_result.data
        except DispatchError as e:
            logger.warning(f"[{request_id}] {e.code}: {e.message}")
            error = ErrorDetail(code=e.code, message=e.message)
            telemetry.error_code = e.code
            telemetry.error_message = e.message

        execution_time = _elapsed_ms(start)
        envelope = GatewayResponse(
            data=data,
            error=error,
            meta=ResponseMeta(
                rpc=request.name,
                version=resolution.version,
                fallback=resolution.used_fallback,
                region=region,
                request_id=request_id,
                execution_time=execution_time,
            ),
        )

        logger.info(
            f"[{request_id}] {request.name} @ {resolution.version}"
            f"{' (fallback)' if resolution.used_fallback else ''} "
            f"region={region} app={client.app_name}/{client.app_version} "
            f"{'error=' + error.code if error else 'ok'} {execution_time:.1f}ms"
        )

        if dispatch_result is not None and dispatch_result.write:
            await self._publish(request.name, data, request_id)

        return EndpointResult(
            status_code=200,
            body=envelope.to_json_dict(),
            headers={
                "X-Region": region,
                "X-Request-Id": request_id,
                "X-Execution-Time": f"{execution_time}",
                "X-Api-Version": resolution.version,
            },
        )

    @staticmethod
    def _error_result(status_code: int, message: str, code: str, request_id: str) -> EndpointResult:
        return EndpointResult(
            status_code=status_code,
            body={"error": message, "code": code, "requestId": request_id},
            headers={"X-Request-Id": request_id},
        )

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    async def _record(self, telemetry: RequestTelemetry) -> None:
        if self.telemetry is None:
            return
        try:
            await self.telemetry.record_request(telemetry)
        except Exception as e:
            logger.error(f"[{telemetry.request_id}] Failed to record telemetry: {e}")

    async def _publish(self, rpc: str, data: Any, request_id: str) -> None:
        event_type = WRITE_EVENT_TYPES.get(rpc)
        if event_type is None or self.event_publisher is None:
            return
        payload = dict(data) if isinstance(data, dict) else {"result": data}
        payload["rpc"] = rpc
        payload["requestId"] = request_id
        event = FanoutEvent.create(
            event_type=event_type,
            payload=payload,
            source_region=self.registry.primary_region,
        )
        try:
            await self.event_publisher.publish(event)
        except Exception as e:
            logger.error(f"[{request_id}] Failed to publish {event_type.value} event: {e}")


@lru_cache()
def get_request_gateway() -> RequestGateway:
    """Get the process-wide gateway wired to the configured services."""
    registry = get_version_registry()
    dispatcher = OperationDispatcher(
        registry=registry,
        table=get_operation_table(),
        backend=get_data_backend(),
    )
    return RequestGateway(
        registry=registry,
        resolver=get_resolver(),
        dispatcher=dispatcher,
        telemetry=get_telemetry_store(),
        event_publisher=get_event_publisher(),
    )
