"""
Order fulfillment mirror

Projects a shipment's state onto the originating order's `fulfillment`
subdocument so order views show delivery progress without joining
shipments. Never creates orders and never touches Order.status.
"""
import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.models.order import Order, OrderFulfillmentStatus
from fulfillment.models.shipment import ShipmentStatus, utcnow
from fulfillment.modules.shipping.carriers.normalize import get_tracking_url, normalize_carrier

logger = logging.getLogger(__name__)

SHIPMENT_TO_ORDER_STATUS = {
    ShipmentStatus.PENDING: OrderFulfillmentStatus.PENDING,
    ShipmentStatus.PROCESSING: OrderFulfillmentStatus.PROCESSING,
    ShipmentStatus.IN_TRANSIT: OrderFulfillmentStatus.IN_TRANSIT,
    ShipmentStatus.DELIVERED: OrderFulfillmentStatus.DELIVERED,
    # Both spellings collapse on the order side only
    ShipmentStatus.CANCELED: OrderFulfillmentStatus.CANCELLED,
    ShipmentStatus.CANCELLED: OrderFulfillmentStatus.CANCELLED,
}


def to_order_status(status: Union[str, ShipmentStatus]) -> str:
    parsed = ShipmentStatus.parse(status)
    if parsed is None:
        return OrderFulfillmentStatus.PROCESSING
    return SHIPMENT_TO_ORDER_STATUS[parsed]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class OrderMirror:
    """Keeps Order.fulfillment in step with shipment transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def sync_to_order(
        self,
        order_id: Optional[str],
        status: Union[str, ShipmentStatus],
        note: str,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
        shipped_at: Optional[datetime] = None,
        delivered_at: Optional[datetime] = None,
        tracking_url: Optional[str] = None,
    ) -> Optional[Order]:
        """
        Copy shipment state onto the order, appending `note` to its history.

        Returns:
            The updated Order, or None if order_id is blank or unknown
        """
        order_id = (order_id or "").strip()
        if not order_id:
            return None

        result = await self.db.execute(select(Order).where(Order.order_id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            logger.debug(f"No order {order_id!r} to mirror shipment status onto")
            return None

        now = utcnow().isoformat()
        mirrored_status = to_order_status(status)

        # Build a new dict so the JSON column is detected as changed
        fulfillment = dict(order.fulfillment or {})
        fulfillment["status"] = mirrored_status

        selection = normalize_carrier(carrier)
        if selection is not None:
            fulfillment["carrier"] = selection.code.value
            fulfillment["carrierLabel"] = selection.label

        if tracking_number:
            fulfillment["trackingNumber"] = tracking_number

        url = tracking_url or get_tracking_url(carrier, tracking_number)
        if url:
            fulfillment["trackingUrl"] = url

        # Set once, like the shipment's own timestamps
        if shipped_at and not fulfillment.get("shippedAt"):
            fulfillment["shippedAt"] = _iso(shipped_at)
        if delivered_at and not fulfillment.get("deliveredAt"):
            fulfillment["deliveredAt"] = _iso(delivered_at)

        fulfillment["history"] = list(fulfillment.get("history") or []) + [
            {"status": mirrored_status, "note": note, "at": now}
        ]
        fulfillment["updatedAt"] = now

        order.fulfillment = fulfillment
        await self.db.flush()

        logger.info(f"Order {order_id} fulfillment -> {mirrored_status}")
        return order
