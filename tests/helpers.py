"""Shared test helpers: fake fetcher, snapshots and fresh-session loaders."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select

from fulfillment.models import Order, Product, Shipment
from fulfillment.modules.shipping.carriers.base import TrackingEvent, TrackingSnapshot
from fulfillment.modules.shipping.status import TrackingStatus

BUSINESS_ID = "biz-seller"
OTHER_BUSINESS_ID = "biz-other"


class FakeFetcher:
    """Stand-in for TrackingFetcher that records calls."""

    def __init__(self, snapshot: Optional[TrackingSnapshot] = None):
        self.snapshot = snapshot
        self.calls: List[Tuple[str, str]] = []

    async def fetch_live_tracking(self, carrier, tracking_number):
        self.calls.append((carrier, tracking_number))
        return self.snapshot


def make_snapshot(status: TrackingStatus = TrackingStatus.IN_TRANSIT) -> TrackingSnapshot:
    return TrackingSnapshot(
        status=status,
        events=[TrackingEvent(status=status.value, description="Parcel in transit", location="JHB")],
        estimated_delivery="2026-10-20",
        last_update=datetime.now(timezone.utc),
        carrier_status="In transit to hub",
    )


def shipment_fields(**overrides: Any) -> Dict[str, Any]:
    fields = {
        "order_id": "ORD-1001",
        "buyer_name": "Peter Parker",
        "buyer_email": "buyer@example.com",
        "address": "20 Ingram St, Queens",
        "quantity": 2,
    }
    fields.update(overrides)
    return fields


async def load_product(session_factory, product_id: int) -> Product:
    async with session_factory() as session:
        return (await session.execute(select(Product).where(Product.id == product_id))).scalar_one()


async def load_shipment(session_factory, shipment_id: int) -> Optional[Shipment]:
    async with session_factory() as session:
        result = await session.execute(select(Shipment).where(Shipment.id == shipment_id))
        return result.scalar_one_or_none()


async def load_order(session_factory, order_id: str) -> Order:
    async with session_factory() as session:
        return (await session.execute(select(Order).where(Order.order_id == order_id))).scalar_one()
