"""
Shipment notifications

Delivery (email, push, in-app) belongs to the notifications subsystem.
Fulfillment only builds the message and hands it to a notifier after the
change is committed. A failing notifier never fails the request.
"""
import logging
from typing import Any, Dict, Optional

from fulfillment.models.shipment import Shipment

logger = logging.getLogger(__name__)


def build_status_message(shipment: Shipment, previous_status: Optional[str]) -> Dict[str, Any]:
    """Notification payload for a shipment status change."""
    if previous_status is None:
        title = "Shipment created"
    elif previous_status == shipment.status:
        title = f"Shipment update: {shipment.status}"
    else:
        title = f"Shipment {previous_status} -> {shipment.status}"

    return {
        "type": "shipment_status",
        "title": title,
        "shipment_id": shipment.id,
        "order_id": shipment.order_id,
        "status": shipment.status,
        "previous_status": previous_status,
        "carrier": shipment.carrier,
        "tracking_number": shipment.tracking_number,
        "recipient_business_id": shipment.buyer_business_id,
        "recipient_email": shipment.buyer_email,
    }


class ShipmentNotifier:
    """Default notifier: writes the message to the log."""

    async def shipment_status_changed(
        self,
        shipment: Shipment,
        previous_status: Optional[str],
    ) -> Dict[str, Any]:
        message = build_status_message(shipment, previous_status)
        logger.info(f"Notification queued: {message['title']} (shipment {shipment.id})")
        return message


async def notify_safely(
    notifier: ShipmentNotifier,
    shipment: Shipment,
    previous_status: Optional[str],
) -> None:
    """Call the notifier, logging instead of raising on failure."""
    try:
        await notifier.shipment_status_changed(shipment, previous_status)
    except Exception as e:
        logger.error(
            f"Notification for shipment {shipment.id} failed: {type(e).__name__}: {e}"
        )
