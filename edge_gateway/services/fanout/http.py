"""
HTTP Delivery Transport Implementation

Delivers events to each region's realtime service through its REST
broadcast endpoint. Used when ENV_MODE=production or ENV_MODE=staging.

    POST {region_url}/realtime/v1/api/broadcast
    {"messages": [{"topic": "fanout_<region>", "event": <type>, "payload": {...}}]}

Requirements:
    - REGION_URLS must map every target region to its base URL
    - DATA_API_KEY is sent as the service key

Version: 1.0.0
"""

import logging
from typing import Optional

import httpx

from edge_gateway.core.config import get_settings
from edge_gateway.core.errors import DeliveryError
from edge_gateway.services.fanout.base import BaseDeliveryTransport

logger = logging.getLogger(__name__)


class HttpDeliveryTransport(BaseDeliveryTransport):
    """
    Realtime broadcast over HTTP, one request per region per attempt.

    Timeouts are enforced by the broadcaster; the client timeout here is
    only an upper bound.
    """

    BROADCAST_PATH = "/realtime/v1/api/broadcast"

    def __init__(
        self,
        region_urls: Optional[dict[str, str]] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.region_urls = {
            region: url.rstrip("/")
            for region, url in (region_urls or settings.region_urls_map).items()
        }
        api_key = api_key or settings.data_api_key

        if not self.region_urls:
            raise ValueError(
                "REGION_URLS is required outside development mode. "
                "Set it in your .env file as region=url pairs."
            )

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=settings.fanout_timeout_seconds * 2,
            transport=transport,
        )

        logger.info(f"HttpDeliveryTransport initialized (regions={sorted(self.region_urls)})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def deliver(self, region: str, event_name: str, message: dict) -> None:
        base_url = self.region_urls.get(region)
        if not base_url:
            raise DeliveryError(region, f"No endpoint configured for region {region}")

        body = {
            "messages": [{
                "topic": f"fanout_{region}",
                "event": event_name,
                "payload": message,
            }]
        }

        try:
            response = await self._client.post(f"{base_url}{self.BROADCAST_PATH}", json=body)
        except httpx.HTTPError as e:
            raise DeliveryError(region, f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise DeliveryError(region, f"HTTP {response.status_code}: {response.text[:200]}")

    async def close(self) -> None:
        await self._client.aclose()
