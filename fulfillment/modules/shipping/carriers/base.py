"""
Base Carrier Interface

Every courier adapter does exactly one thing: fetch the raw tracking
record for a tracking number. Turning that record into a
TrackingSnapshot is the job of the pure functions in parsers.py.

- One outbound request per call, fixed timeout, no retry
- Transport errors, invalid URLs, timeouts, non-2xx and malformed JSON are logged and
  reported as None
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from fulfillment.core.exceptions import CarrierUnavailableError
from fulfillment.core.monitoring import record_carrier_request
from fulfillment.modules.shipping.status import TrackingStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Carrier-Agnostic Data Classes
# =============================================================================

@dataclass
class TrackingEvent:
    """A single tracking event."""
    status: str  # normalized TrackingStatus value
    description: Optional[str] = None
    timestamp: Optional[str] = None  # as reported by the carrier
    location: Optional[str] = None
    raw_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrackingSnapshot:
    """Normalized live tracking for one shipment."""
    status: TrackingStatus
    events: List[TrackingEvent] = field(default_factory=list)
    estimated_delivery: Optional[str] = None
    last_update: Optional[datetime] = None
    carrier_status: Optional[str] = None  # carrier's own wording

    def events_as_dicts(self) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self.events]


# =============================================================================
# Base Carrier Interface
# =============================================================================

class BaseCarrier(ABC):
    """
    Abstract base class for courier tracking adapters.

    Adapters share one injected httpx.AsyncClient. Missing credentials do
    not fail construction; the call raises CarrierUnavailableError, which
    track() reports as None like any other carrier failure.
    """

    # Key into parsers.TRACKING_PARSERS
    parser_key: str = ""

    def __init__(
        self,
        carrier_code: str,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
    ):
        self._carrier_code = carrier_code
        self._client = http_client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @property
    def carrier_code(self) -> str:
        """Registry key this adapter was built for."""
        return self._carrier_code

    @property
    @abstractmethod
    def carrier_name(self) -> str:
        """Return the human-readable carrier name."""
        pass

    @classmethod
    @abstractmethod
    def from_settings(cls, carrier_code: str, settings: Any, http_client: httpx.AsyncClient) -> "BaseCarrier":
        """Build the adapter from application settings."""
        pass

    @abstractmethod
    async def _send(self, tracking_number: str) -> httpx.Response:
        """Issue the single tracking request."""
        pass

    @property
    def live_tracking_enabled(self) -> bool:
        """False when credentials restrict which shipments can be tracked."""
        return True

    async def track(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the raw tracking record.

        Returns:
            Vendor JSON object, or None when the carrier could not answer
        """
        started = time.monotonic()
        outcome = "error"
        try:
            response = await self._send(tracking_number)
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise CarrierUnavailableError(
                    self.carrier_code,
                    f"{self.carrier_name} returned {type(data).__name__}, expected an object",
                )
            outcome = "ok"
            return data
        except httpx.TimeoutException:
            outcome = "timeout"
            logger.warning(
                f"{self.carrier_name} tracking timed out after {self.timeout}s for {tracking_number}"
            )
        except httpx.HTTPStatusError as e:
            outcome = "http_error"
            logger.warning(
                f"{self.carrier_name} tracking failed for {tracking_number}: HTTP {e.response.status_code}"
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"{self.carrier_name} tracking request error for {tracking_number}: {e}")
        except ValueError as e:
            outcome = "bad_payload"
            logger.error(f"{self.carrier_name} returned malformed JSON for {tracking_number}: {e}")
        except CarrierUnavailableError as e:
            outcome = "unavailable"
            logger.warning(f"{self.carrier_name} unavailable: {e.message}")
        finally:
            record_carrier_request(self.carrier_code, outcome, (time.monotonic() - started) * 1000)
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.carrier_code} {self.base_url}>"
