"""
Data Backend Abstract Base Class

The business logic behind every operation (order placement, loyalty,
forecasting, pricing, ...) lives in the hosted database and is reached
by calling named functions. The gateway treats it as opaque: versioned
handlers call ``backend.call(function, params)`` and shape the result.

Both MockDataBackend and HttpDataBackend implement this interface.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class BackendHealth:
    """
    Result of a backend health check.

    Attributes:
        healthy: Whether the backend answered
        provider: Implementation name ("mock", "http")
        latency_ms: Probe round trip
        error: Failure description if unhealthy
    """
    healthy: bool
    provider: str
    latency_ms: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "provider": self.provider,
            "latency_ms": round(self.latency_ms, 2),
            "error": self.error,
        }


class BaseDataBackend(ABC):
    """
    Abstract base class for data backends.

    Example:
        >>> backend = get_data_backend()
        >>> stores = await backend.call("list_stores", {})
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name (e.g. "mock", "http")."""
        pass

    @abstractmethod
    async def call(self, function: str, params: dict[str, Any]) -> Any:
        """
        Invoke a named backend function.

        Args:
            function: Backend function name
            params: JSON-serializable arguments

        Returns:
            The function's JSON result

        Raises:
            DataBackendError: Unknown function, bad arguments, or
                a transport failure
        """
        pass

    @abstractmethod
    async def health_check(self) -> BackendHealth:
        """Probe the backend without side effects."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
