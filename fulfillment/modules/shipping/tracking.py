"""
Live tracking lookups

TrackingFetcher is the only thing business code calls to reach a
courier. It is stateless apart from the injected registry, so tests
swap it for a fake without touching HTTP.
"""
import logging
from typing import Optional

from fulfillment.modules.shipping.carriers import CarrierRegistry
from fulfillment.modules.shipping.carriers.base import TrackingSnapshot
from fulfillment.modules.shipping.carriers.parsers import parse_tracking

logger = logging.getLogger(__name__)


class TrackingFetcher:
    """Resolve carrier -> adapter, fetch, parse. Any failure yields None."""

    def __init__(self, registry: CarrierRegistry):
        self.registry = registry

    async def fetch_live_tracking(
        self,
        carrier: Optional[str],
        tracking_number: Optional[str],
    ) -> Optional[TrackingSnapshot]:
        """
        Fetch normalized live tracking.

        Args:
            carrier: Stored carrier code or Shippo token
            tracking_number: Courier tracking number

        Returns:
            TrackingSnapshot, or None when there is no adapter, the adapter
            is restricted, or the courier could not be reached
        """
        carrier = (carrier or "").strip()
        tracking_number = (tracking_number or "").strip()
        if not carrier or not tracking_number:
            return None
        if carrier.upper() == "OTHER":
            return None

        adapter = self.registry.resolve(carrier)
        if adapter is None:
            logger.debug(f"No tracking adapter for carrier {carrier!r}")
            return None

        if not adapter.live_tracking_enabled:
            logger.info(
                f"Skipping live tracking for {carrier}: credentials only allow sandbox tracking"
            )
            return None

        raw = await adapter.track(tracking_number)
        if raw is None:
            return None

        try:
            return parse_tracking(adapter.parser_key, raw)
        except Exception as e:
            logger.error(
                f"Failed to parse {adapter.carrier_name} tracking for {tracking_number}: "
                f"{type(e).__name__}: {e}"
            )
            return None
