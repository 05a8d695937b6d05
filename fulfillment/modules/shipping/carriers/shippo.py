"""
Shippo aggregator adapter

Tracks UPS, USPS, FedEx and DHL Express through Shippo's /tracks API.
The "shippo" token is Shippo's sandbox carrier, the only one a test key
(shippo_test_...) can track.
"""
import logging
from urllib.parse import quote

import httpx

from fulfillment.core.exceptions import CarrierUnavailableError
from fulfillment.modules.shipping.carriers import register_carrier
from fulfillment.modules.shipping.carriers.base import BaseCarrier

logger = logging.getLogger(__name__)

SHIPPO_TEST_KEY_PREFIX = "shippo_test_"
SHIPPO_TEST_CARRIER = "shippo"


@register_carrier("ups", "usps", "fedex", "dhl_express", SHIPPO_TEST_CARRIER)
class ShippoCarrier(BaseCarrier):
    """GET {base}/tracks/{carrier_token}/{tracking_number}."""

    parser_key = "shippo"

    @property
    def carrier_name(self) -> str:
        return f"Shippo ({self.carrier_code})"

    @classmethod
    def from_settings(cls, carrier_code, settings, http_client):
        return cls(
            carrier_code,
            http_client,
            base_url=settings.SHIPPO_BASE_URL,
            api_key=settings.SHIPPO_TOKEN,
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
        )

    @property
    def is_test_key(self) -> bool:
        return bool(self.api_key) and self.api_key.startswith(SHIPPO_TEST_KEY_PREFIX)

    @property
    def live_tracking_enabled(self) -> bool:
        # Test keys only resolve Shippo's sandbox carrier
        if self.is_test_key:
            return self.carrier_code == SHIPPO_TEST_CARRIER
        return True

    async def _send(self, tracking_number: str) -> httpx.Response:
        if not self.api_key:
            raise CarrierUnavailableError(self.carrier_code, "SHIPPO_TOKEN is not configured")
        return await self._client.get(
            f"{self.base_url}/tracks/{quote(self.carrier_code, safe='')}/{quote(tracking_number, safe='')}",
            headers={"Authorization": f"ShippoToken {self.api_key}"},
            timeout=self.timeout,
        )
