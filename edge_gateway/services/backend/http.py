"""
HTTP Data Backend Implementation

Production implementation that calls the hosted database's RPC endpoint
(PostgREST style). Used when ENV_MODE=production or ENV_MODE=staging.

    POST {DATA_API_URL}/rest/v1/rpc/{function}
    apikey: {DATA_API_KEY}
    Authorization: Bearer {DATA_API_KEY}
    body: JSON params

Requirements:
    - DATA_API_URL and DATA_API_KEY must be set in environment

Version: 1.0.0
"""

import logging
import time
from typing import Any, Optional

import httpx

from edge_gateway.core.config import get_settings
from edge_gateway.core.errors import DataBackendError
from edge_gateway.services.backend.base import BackendHealth, BaseDataBackend

logger = logging.getLogger(__name__)


class HttpDataBackend(BaseDataBackend):
    """
    Data backend that forwards named function calls over HTTP.

    A single ``httpx.AsyncClient`` is shared across requests for
    connection pooling; call ``close()`` on shutdown.

    Example:
        >>> backend = HttpDataBackend("https://db.example.com", "service-key")
        >>> await backend.call("list_stores", {})
    """

    HEALTH_FUNCTION = "get_feature_flags"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP backend.

        Args:
            base_url: Data API base URL (defaults to DATA_API_URL)
            api_key: Service key (defaults to DATA_API_KEY)
            timeout: Per-call timeout in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If the URL or key is not configured
        """
        settings = get_settings()
        base_url = base_url or settings.data_api_url
        api_key = api_key or settings.data_api_key

        if not base_url or not api_key:
            raise ValueError(
                "DATA_API_URL and DATA_API_KEY are required outside development mode. "
                "Set them in your .env file or environment variables."
            )

        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.data_api_timeout_seconds,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

        logger.info(f"HttpDataBackend initialized ({self.base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def call(self, function: str, params: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(f"/rest/v1/rpc/{function}", json=params or {})
        except httpx.TimeoutException as e:
            logger.error(f"Data API timeout calling {function}: {e}")
            raise DataBackendError(function, f"Data API timeout calling {function}") from e
        except httpx.HTTPError as e:
            logger.error(f"Data API transport error calling {function}: {e}")
            raise DataBackendError(function, f"Data API unreachable: {e}") from e

        if response.status_code >= 400:
            raise DataBackendError(
                function,
                self._error_message(response),
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DataBackendError(function, "Data API returned invalid JSON") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    async def health_check(self) -> BackendHealth:
        start = time.perf_counter()
        try:
            await self.call(self.HEALTH_FUNCTION, {})
        except DataBackendError as e:
            return BackendHealth(
                healthy=False,
                provider=self.provider_name,
                latency_ms=(time.perf_counter() - start) * 1000,
                error=str(e),
            )
        return BackendHealth(
            healthy=True,
            provider=self.provider_name,
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    async def close(self) -> None:
        await self._client.aclose()
