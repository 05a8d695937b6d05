"""
Direct courier adapters: The Courier Guy, Fastway, Aramex.

Each talks to the courier's own tracking endpoint.
"""
import logging
from urllib.parse import quote

import httpx

from fulfillment.modules.shipping.carriers import register_carrier
from fulfillment.modules.shipping.carriers.base import BaseCarrier

logger = logging.getLogger(__name__)


@register_carrier("COURIER_GUY")
class CourierGuyCarrier(BaseCarrier):
    """GET {base}/tracking/{tracking_number}, optional Bearer key."""

    parser_key = "COURIER_GUY"

    @property
    def carrier_name(self) -> str:
        return "The Courier Guy"

    @classmethod
    def from_settings(cls, carrier_code, settings, http_client):
        return cls(
            carrier_code,
            http_client,
            base_url=settings.COURIER_GUY_BASE_URL,
            api_key=settings.COURIER_GUY_API_KEY,
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
        )

    async def _send(self, tracking_number: str) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return await self._client.get(
            f"{self.base_url}/tracking/{quote(tracking_number, safe='')}",
            headers=headers,
            timeout=self.timeout,
        )


@register_carrier("FASTWAY")
class FastwayCarrier(BaseCarrier):
    """GET {base}/v1/track/{tracking_number}."""

    parser_key = "FASTWAY"

    @property
    def carrier_name(self) -> str:
        return "Fastway"

    @classmethod
    def from_settings(cls, carrier_code, settings, http_client):
        return cls(
            carrier_code,
            http_client,
            base_url=settings.FASTWAY_BASE_URL,
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
        )

    async def _send(self, tracking_number: str) -> httpx.Response:
        return await self._client.get(
            f"{self.base_url}/v1/track/{quote(tracking_number, safe='')}",
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )


@register_carrier("ARAMEX")
class AramexCarrier(BaseCarrier):
    """POST {base}/tracking with the shipment number in the body."""

    parser_key = "ARAMEX"

    @property
    def carrier_name(self) -> str:
        return "Aramex"

    @classmethod
    def from_settings(cls, carrier_code, settings, http_client):
        return cls(
            carrier_code,
            http_client,
            base_url=settings.ARAMEX_BASE_URL,
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
        )

    async def _send(self, tracking_number: str) -> httpx.Response:
        return await self._client.post(
            f"{self.base_url}/tracking",
            json={"Shipments": [tracking_number], "GetLastTrackingUpdateOnly": False},
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
