"""
Shipping Module

- TrackingStatus vocabulary and carrier status mapping
- Courier adapters behind a read-only CarrierRegistry
- TrackingFetcher, the single seam for live tracking
"""
from fulfillment.modules.shipping.status import TrackingStatus, map_carrier_status, map_shippo_status
from fulfillment.modules.shipping.carriers import CarrierRegistry, build_carrier_registry
from fulfillment.modules.shipping.carriers.base import BaseCarrier, TrackingEvent, TrackingSnapshot
from fulfillment.modules.shipping.tracking import TrackingFetcher

__all__ = [
    "TrackingStatus",
    "map_carrier_status",
    "map_shippo_status",
    "CarrierRegistry",
    "build_carrier_registry",
    "BaseCarrier",
    "TrackingEvent",
    "TrackingSnapshot",
    "TrackingFetcher",
]
