"""
Shipment lifecycle

    Pending -> Processing -> In Transit -> Delivered
    any non-terminal -> Canceled | Cancelled

Delivered and both cancel spellings are terminal for inventory
accounting. Requested statuses outside the vocabulary are never fatal:
the current status is kept and the rejection is written to history.

The delivered-inventory adjustment is claimed with a conditional UPDATE
on inventory_counted, so concurrent "Delivered" transitions for the
same shipment decrement stock exactly once.

Transitions re-read the shipment with SELECT ... FOR UPDATE after any
carrier call, so concurrent writers queue on the row instead of
overwriting each other's history. The version column catches the same
race on stores that ignore FOR UPDATE; the loser fails with a retryable
PersistenceError.

Nothing here commits; FulfillmentGateway owns the unit of work.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from fulfillment.core.exceptions import (
    InvalidStatusError,
    ProductNotFoundError,
    ShipmentForbiddenError,
    ShipmentNotFoundError,
)
from fulfillment.core.monitoring import record_inventory_claim
from fulfillment.models.product import Product
from fulfillment.models.shipment import Shipment, ShipmentStatus, utcnow
from fulfillment.modules.shipping.carriers.base import TrackingSnapshot
from fulfillment.modules.shipping.tracking import TrackingFetcher
from fulfillment.services.order_mirror import OrderMirror

logger = logging.getLogger(__name__)

DEFAULT_STATUS = ShipmentStatus.PROCESSING
CREATED_NOTE = "Shipment created"


def clamp_quantity(value: Any) -> int:
    """Quantities below 1 or non-numeric become 1."""
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return max(quantity, 1)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def apply_live_tracking(shipment: Shipment, snapshot: TrackingSnapshot) -> None:
    """Cache live tracking on the shipment. Never touches shipment.status."""
    shipment.live_status = snapshot.status.value
    shipment.live_events = snapshot.events_as_dicts()
    if snapshot.estimated_delivery:
        shipment.estimated_delivery = snapshot.estimated_delivery
    shipment.last_tracking_update = snapshot.last_update or utcnow()


@dataclass
class TransitionResult:
    """Outcome of a transition, for the gateway and API layer."""
    shipment: Shipment
    previous_status: str
    rejected: Optional[InvalidStatusError] = None
    inventory_claimed: bool = False
    tracking: Optional[TrackingSnapshot] = None

    @property
    def status_changed(self) -> bool:
        return self.shipment.status != self.previous_status


class ShipmentStateMachine:
    """
    Applies lifecycle transitions to shipments within the caller's session.
    """

    def __init__(
        self,
        db: AsyncSession,
        fetcher: Optional[TrackingFetcher] = None,
        order_mirror: Optional[OrderMirror] = None,
    ):
        self.db = db
        self.fetcher = fetcher
        self.order_mirror = order_mirror or OrderMirror(db)

    # ==================== Loading ====================

    async def get_owned(self, shipment_id: int, business_id: str) -> Shipment:
        """Load a shipment, enforcing ownership."""
        result = await self.db.execute(select(Shipment).where(Shipment.id == shipment_id))
        shipment = result.scalar_one_or_none()

        if shipment is None:
            raise ShipmentNotFoundError(
                "Shipment not found",
                details={"shipment_id": shipment_id},
            )
        if shipment.business_id != business_id:
            logger.warning(
                f"Business {business_id} attempted to modify shipment {shipment_id} "
                f"owned by {shipment.business_id}"
            )
            raise ShipmentForbiddenError(
                "Shipment belongs to another business",
                details={"shipment_id": shipment_id},
            )
        return shipment

    async def _lock_for_update(self, shipment_id: int) -> Shipment:
        """
        Re-read a shipment under a row lock held until commit.

        Stores without FOR UPDATE (SQLite) fall back on the version column.
        """
        result = await self.db.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        shipment = result.scalar_one_or_none()
        if shipment is None:
            raise ShipmentNotFoundError(
                "Shipment not found",
                details={"shipment_id": shipment_id},
            )
        return shipment

    # ==================== Create ====================

    async def create(
        self,
        business_id: str,
        order_id: Optional[str] = None,
        product_id: Optional[int] = None,
        buyer_business_id: Optional[str] = None,
        buyer_name: Optional[str] = None,
        buyer_email: Optional[str] = None,
        address: Optional[str] = None,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
        quantity: Any = 1,
        initial_status: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Shipment:
        """
        Create a shipment. Blank or unknown initial status becomes Processing.

        Status side effects (timestamps, inventory claim) apply to the
        initial status exactly as they would for a transition. The first
        history entry is always "Shipment created"; a seller note is kept
        on Shipment.notes.

        Raises:
            ProductNotFoundError: product_id does not match a product
        """
        if product_id is not None:
            exists = await self.db.scalar(select(Product.id).where(Product.id == product_id))
            if exists is None:
                raise ProductNotFoundError(
                    f"Product {product_id} not found",
                    details={"product_id": product_id},
                )

        status = ShipmentStatus.parse(initial_status)
        if status is None:
            if _clean(initial_status):
                logger.warning(
                    f"Unknown initial status {initial_status!r} for new shipment, using {DEFAULT_STATUS.value}"
                )
            status = DEFAULT_STATUS

        now = utcnow()
        shipment = Shipment(
            business_id=business_id,
            buyer_business_id=_clean(buyer_business_id),
            order_id=_clean(order_id),
            product_id=product_id,
            buyer_name=_clean(buyer_name),
            buyer_email=_clean(buyer_email),
            address=_clean(address),
            carrier=_clean(carrier),
            tracking_number=_clean(tracking_number),
            notes=_clean(note),
            status=status.value,
            quantity=clamp_quantity(quantity),
            inventory_counted=False,
            history=[],
            created_at=now,
            updated_at=now,
        )
        shipment.append_history(status.value, CREATED_NOTE, at=now)

        self.db.add(shipment)
        # The inventory claim below needs the primary key
        await self.db.flush()

        await self._apply_status_effects(shipment, status, now)
        await self.db.flush()

        await self._sync_order(shipment, CREATED_NOTE)

        logger.info(
            f"Shipment created: {shipment.id} business={business_id} order={shipment.order_id} "
            f"status={shipment.status}"
        )
        return shipment

    # ==================== Transition ====================

    async def transition(
        self,
        shipment_id: int,
        requested_status: Any,
        business_id: str,
        note: Optional[str] = None,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move a shipment to requested_status.

        Raises:
            ShipmentNotFoundError: no such shipment
            ShipmentForbiddenError: shipment owned by another business
        """
        shipment = await self.get_owned(shipment_id, business_id)

        new_carrier = _clean(carrier)
        new_tracking_number = _clean(tracking_number)

        # The carrier call happens before any write so no row lock spans it
        track_carrier = new_carrier or shipment.carrier
        track_number = new_tracking_number or shipment.tracking_number
        snapshot = None
        if self._would_fetch(track_carrier, track_number):
            snapshot = await self.fetcher.fetch_live_tracking(track_carrier, track_number)

        # Everything below works on the locked, current row
        shipment = await self._lock_for_update(shipment_id)

        previous_status = shipment.status
        current = ShipmentStatus.parse(previous_status) or DEFAULT_STATUS

        target = ShipmentStatus.parse(requested_status)
        rejected = None
        if target is None:
            rejected = InvalidStatusError(requested_status)
            logger.warning(
                f"Shipment {shipment.id}: rejected status {requested_status!r}, keeping {current.value}"
            )
            target = current
        elif current.is_terminal and target != current:
            logger.warning(
                f"Shipment {shipment.id} leaving terminal status {current.value} for {target.value}"
            )

        if new_carrier:
            shipment.carrier = new_carrier
        if new_tracking_number:
            shipment.tracking_number = new_tracking_number
        if snapshot is not None:
            apply_live_tracking(shipment, snapshot)

        now = utcnow()
        shipment.status = target.value
        shipment.updated_at = now

        if rejected is not None:
            entry_note = f"{_clean(note) or 'Status unchanged'} [{rejected.code}: {requested_status!r}]"
        else:
            entry_note = _clean(note) or f"Status changed to {target.value}"
        shipment.append_history(target.value, entry_note, at=now)

        claimed = await self._apply_status_effects(shipment, target, now)
        await self.db.flush()

        await self._sync_order(shipment, entry_note)

        logger.info(f"Shipment {shipment.id}: {previous_status} -> {shipment.status}")
        return TransitionResult(
            shipment=shipment,
            previous_status=previous_status,
            rejected=rejected,
            inventory_claimed=claimed,
            tracking=snapshot,
        )

    # ==================== Live Tracking ====================

    async def refresh_live_tracking(
        self,
        shipment_id: int,
        business_id: str,
    ) -> Optional[TrackingSnapshot]:
        """Re-fetch and cache live tracking. Shipment status is left alone."""
        shipment = await self.get_owned(shipment_id, business_id)
        snapshot = await self._fetch_live_tracking(shipment.carrier, shipment.tracking_number)
        if snapshot is None:
            return None

        shipment = await self._lock_for_update(shipment_id)
        apply_live_tracking(shipment, snapshot)
        shipment.updated_at = utcnow()
        await self.db.flush()
        logger.info(f"Shipment {shipment.id} live tracking refreshed: {snapshot.status.value}")
        return snapshot

    def _would_fetch(self, carrier: Optional[str], tracking_number: Optional[str]) -> bool:
        if self.fetcher is None or not carrier or not tracking_number:
            return False
        return carrier.strip().upper() != "OTHER"

    async def _fetch_live_tracking(
        self,
        carrier: Optional[str],
        tracking_number: Optional[str],
    ) -> Optional[TrackingSnapshot]:
        if not self._would_fetch(carrier, tracking_number):
            return None
        return await self.fetcher.fetch_live_tracking(carrier, tracking_number)

    # ==================== Delete ====================

    async def delete(self, shipment_id: int, business_id: str) -> None:
        """Hard delete. Inventory already counted is not given back."""
        shipment = await self.get_owned(shipment_id, business_id)
        if shipment.inventory_counted:
            logger.info(f"Deleting counted shipment {shipment.id}; product counters are kept")
        await self.db.delete(shipment)
        await self.db.flush()
        logger.info(f"Shipment deleted: {shipment_id} business={business_id}")

    # ==================== Side Effects ====================

    async def _apply_status_effects(
        self,
        shipment: Shipment,
        status: ShipmentStatus,
        now: datetime,
    ) -> bool:
        """Set first-time timestamps and claim inventory on delivery.

        Returns True if this call claimed the inventory adjustment.
        """
        if status == ShipmentStatus.IN_TRANSIT and shipment.shipped_at is None:
            shipment.shipped_at = now

        if status == ShipmentStatus.DELIVERED:
            if shipment.delivered_at is None:
                shipment.delivered_at = now
            return await self._claim_inventory(shipment)

        return False

    async def _claim_inventory(self, shipment: Shipment) -> bool:
        """
        Decrement product stock for a delivered shipment, at most once.

        The conditional UPDATE is the only check that matters; the
        in-memory flag may be stale under concurrency.
        """
        if shipment.product_id is None:
            return False
        if shipment.inventory_counted:
            return False

        result = await self.db.execute(
            update(Shipment)
            .where(Shipment.id == shipment.id, Shipment.inventory_counted.is_(False))
            .values(inventory_counted=True)
            .execution_options(synchronize_session=False)
        )
        claimed = result.rowcount == 1
        record_inventory_claim(claimed)

        # Either we flipped it or someone else already had
        set_committed_value(shipment, "inventory_counted", True)

        if not claimed:
            logger.info(f"Shipment {shipment.id} inventory already counted by a concurrent update")
            return False

        quantity = shipment.quantity or 1
        await self.db.execute(
            update(Product)
            .where(Product.id == shipment.product_id)
            .values(
                stock=Product.stock - quantity,
                sold_count=Product.sold_count + quantity,
                sold_orders=Product.sold_orders + 1,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            f"Inventory counted for shipment {shipment.id}: product {shipment.product_id} -{quantity}"
        )
        return True

    async def _sync_order(self, shipment: Shipment, note: str) -> None:
        await self.order_mirror.sync_to_order(
            shipment.order_id,
            shipment.status,
            note=note,
            carrier=shipment.carrier,
            tracking_number=shipment.tracking_number,
            shipped_at=shipment.shipped_at,
            delivered_at=shipment.delivered_at,
        )
