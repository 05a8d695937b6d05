"""
Tracking status vocabulary

Carrier APIs report status as free text ("Parcel collected from sender",
"OUT FOR DELIVERY", "Shipment delayed - weather"). Everything downstream
works with TrackingStatus only.
"""
import enum
from typing import Any, Dict, Tuple


class TrackingStatus(str, enum.Enum):
    """Carrier-independent tracking status."""
    UNKNOWN = "UNKNOWN"
    PROCESSING = "PROCESSING"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELAYED = "DELAYED"
    DELIVERED = "DELIVERED"


# Evaluated in order, first hit wins.
STATUS_KEYWORD_RULES: Tuple[Tuple[Tuple[str, ...], TrackingStatus], ...] = (
    (("delivered", "completed"), TrackingStatus.DELIVERED),
    (("out for delivery", "on vehicle"), TrackingStatus.OUT_FOR_DELIVERY),
    (("in transit", "in transportation"), TrackingStatus.IN_TRANSIT),
    (("picked up", "collected"), TrackingStatus.PICKED_UP),
    (("exception", "delay"), TrackingStatus.DELAYED),
    (("pending", "processing"), TrackingStatus.PROCESSING),
)

# Shippo aggregator status tokens
SHIPPO_STATUS_MAP: Dict[str, TrackingStatus] = {
    "DELIVERED": TrackingStatus.DELIVERED,
    "TRANSIT": TrackingStatus.IN_TRANSIT,
    "PRE_TRANSIT": TrackingStatus.PROCESSING,
    "RETURNED": TrackingStatus.DELAYED,
    "FAILURE": TrackingStatus.DELAYED,
    "UNKNOWN": TrackingStatus.UNKNOWN,
}


def map_carrier_status(value: Any) -> TrackingStatus:
    """
    Map a carrier's free-text status to TrackingStatus.

    Case-insensitive substring match against STATUS_KEYWORD_RULES.
    Empty, missing or non-string input maps to UNKNOWN. Never raises.
    """
    if not value or not isinstance(value, str):
        return TrackingStatus.UNKNOWN

    text = value.lower()
    for keywords, status in STATUS_KEYWORD_RULES:
        if any(keyword in text for keyword in keywords):
            return status
    return TrackingStatus.UNKNOWN


def map_shippo_status(value: Any) -> TrackingStatus:
    """Map a Shippo status token (TRANSIT, PRE_TRANSIT, ...) to TrackingStatus."""
    if not value or not isinstance(value, str):
        return TrackingStatus.UNKNOWN
    return SHIPPO_STATUS_MAP.get(value.strip().upper(), TrackingStatus.UNKNOWN)
