"""
Gateway Exceptions

Error taxonomy shared by the request gateway, dispatcher and fanout
broadcaster. Each error carries a machine-readable code and the HTTP
status it maps to at the transport boundary.

    Transport-level (fail fast):
        MalformedRequest      -> 500
        MissingRequiredField  -> 400
        InvalidFieldValue     -> 400
        InvalidEvent          -> 400

    Business-level (degrade gracefully, HTTP 200 with an error object):
        UnknownOperation
        OperationFailed

Version: 1.0.0
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Base exception for the edge gateway."""

    code = "gateway_error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


# =============================================================================
# TRANSPORT-LEVEL ERRORS
# =============================================================================

class MalformedRequest(GatewayError):
    """Raised when a request body cannot be parsed at all."""

    code = "malformed_request"
    status_code = 500


class ClientRequestError(GatewayError):
    """A structurally valid body that is missing or misusing a field."""

    code = "client_error"
    status_code = 400


class MissingRequiredField(ClientRequestError):
    """Raised when a mandatory field (rpc, type, payload) is absent."""

    code = "missing_required_field"

    def __init__(self, *fields: str):
        self.fields = fields
        names = ", ".join(fields)
        super().__init__(f"Missing required field{'s' if len(fields) > 1 else ''}: {names}")


class InvalidFieldValue(ClientRequestError):
    """Raised when a field is present but has the wrong shape."""

    code = "invalid_field_value"

    def __init__(self, field: str, detail: str):
        self.field = field
        super().__init__(f"Invalid value for '{field}': {detail}")


class InvalidEvent(ClientRequestError):
    """Raised when a fanout event is structurally invalid."""

    code = "invalid_event"


# =============================================================================
# DISPATCH ERRORS
# =============================================================================

class DispatchError(GatewayError):
    """Base class for failures raised by the operation dispatcher."""

    code = "dispatch_error"
    status_code = 200

    def __init__(self, message: str, operation: str, version: Optional[str] = None):
        self.operation = operation
        self.version = version
        super().__init__(message)


class UnknownOperation(DispatchError):
    """No version at or below the requested one defines the operation."""

    code = "unknown_operation"

    def __init__(self, operation: str, version: str):
        super().__init__(
            f"Operation '{operation}' is not available at API version {version} or earlier",
            operation=operation,
            version=version,
        )


class OperationFailed(DispatchError):
    """The business-logic implementation raised an error."""

    code = "operation_failed"

    def __init__(self, operation: str, version: str, detail: str):
        self.detail = detail
        super().__init__(
            f"Operation '{operation}' failed at {version}: {detail}",
            operation=operation,
            version=version,
        )


# =============================================================================
# COLLABORATOR ERRORS
# =============================================================================

class VersionConfigError(ValueError):
    """Raised when an active/fallback version update is rejected."""


class DataBackendError(Exception):
    """Raised by a data backend when a named function call fails."""

    def __init__(self, function: str, message: str, status_code: Optional[int] = None):
        self.function = function
        self.status_code = status_code
        super().__init__(message)


class DeliveryError(Exception):
    """Raised by a delivery transport when a region rejects an event."""

    def __init__(self, region: str, message: str):
        self.region = region
        super().__init__(message)
