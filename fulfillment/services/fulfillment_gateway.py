"""
Fulfillment gateway

Single entry point for HTTP routes and other subsystems. Each write
operation is one unit of work: the shipment change, the inventory claim,
the product counters and the order mirror commit together or not at all.
A store failure rolls everything back and surfaces as PersistenceError,
which is safe to retry.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import (
    InvalidStatusError,
    PersistenceError,
    ShipmentNotFoundError,
)
from fulfillment.models.shipment import Shipment, ShipmentStatus
from fulfillment.modules.shipping.carriers.base import TrackingSnapshot
from fulfillment.modules.shipping.tracking import TrackingFetcher
from fulfillment.services.notifications import ShipmentNotifier, notify_safely
from fulfillment.services.order_mirror import OrderMirror
from fulfillment.services.shipment_state_machine import ShipmentStateMachine, TransitionResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass
class ShipmentFilter:
    """Filters for a business's shipment list."""
    status: Optional[str] = None
    product_id: Optional[int] = None
    order_id: Optional[str] = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0


class FulfillmentGateway:
    """
    Façade over ShipmentStateMachine and OrderMirror that owns commit/rollback.
    """

    def __init__(
        self,
        db: AsyncSession,
        fetcher: Optional[TrackingFetcher] = None,
        notifier: Optional[ShipmentNotifier] = None,
    ):
        self.db = db
        self.fetcher = fetcher
        self.notifier = notifier or ShipmentNotifier()
        self.state_machine = ShipmentStateMachine(db, fetcher, OrderMirror(db))

    @asynccontextmanager
    async def _unit_of_work(self, operation: str):
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{operation} failed and was rolled back: {type(e).__name__}: {e}")
            raise PersistenceError(
                f"Could not save changes ({operation}). Please retry.",
                details={"operation": operation},
            ) from e
        except Exception:
            await self.db.rollback()
            raise

    # ==================== Writes ====================

    async def create_shipment(self, business_id: str, **fields: Any) -> Shipment:
        """
        Create a shipment owned by business_id.

        Accepts the keyword fields of ShipmentStateMachine.create.
        """
        async with self._unit_of_work("create_shipment"):
            shipment = await self.state_machine.create(business_id, **fields)

        await notify_safely(self.notifier, shipment, None)
        return shipment

    async def update_status(
        self,
        shipment_id: int,
        requested_status: Any,
        business_id: str,
        note: Optional[str] = None,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> TransitionResult:
        """Apply a status transition and commit it."""
        async with self._unit_of_work("update_status"):
            result = await self.state_machine.transition(
                shipment_id,
                requested_status,
                business_id,
                note=note,
                carrier=carrier,
                tracking_number=tracking_number,
            )

        if result.status_changed:
            await notify_safely(self.notifier, result.shipment, result.previous_status)
        return result

    async def refresh_live_tracking(
        self,
        shipment_id: int,
        business_id: str,
    ) -> Optional[TrackingSnapshot]:
        """Re-fetch carrier tracking and persist the cache. Status is unchanged."""
        async with self._unit_of_work("refresh_live_tracking"):
            snapshot = await self.state_machine.refresh_live_tracking(shipment_id, business_id)
        return snapshot

    async def delete_shipment(self, shipment_id: int, business_id: str) -> None:
        async with self._unit_of_work("delete_shipment"):
            await self.state_machine.delete(shipment_id, business_id)

    # ==================== Reads ====================

    async def get_shipment(self, shipment_id: int, business_id: str) -> Shipment:
        return await self.state_machine.get_owned(shipment_id, business_id)

    async def find_by_order_or_tracking_number(self, needle: Optional[str]) -> Shipment:
        """
        Public lookup by order reference or tracking number.

        Not scoped to a business. The error message is deliberately the
        same whether the value is blank or simply unknown.
        """
        value = (needle or "").strip()
        if not value:
            raise ShipmentNotFoundError("No shipment matches that order or tracking number")

        result = await self.db.execute(
            select(Shipment)
            .where(or_(Shipment.order_id == value, Shipment.tracking_number == value))
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .limit(1)
        )
        shipment = result.scalar_one_or_none()
        if shipment is None:
            raise ShipmentNotFoundError("No shipment matches that order or tracking number")
        return shipment

    async def list_by_business(
        self,
        business_id: str,
        filters: Optional[ShipmentFilter] = None,
    ) -> List[Shipment]:
        """
        Shipments owned by business_id, newest first.

        Raises:
            InvalidStatusError: status filter outside the vocabulary
        """
        filters = filters or ShipmentFilter()
        query = select(Shipment).where(Shipment.business_id == business_id)

        if filters.status:
            status = ShipmentStatus.parse(filters.status)
            if status is None:
                raise InvalidStatusError(filters.status)
            query = query.where(Shipment.status == status.value)
        if filters.product_id is not None:
            query = query.where(Shipment.product_id == filters.product_id)
        if filters.order_id:
            query = query.where(Shipment.order_id == filters.order_id.strip())

        limit = min(max(filters.limit, 1), MAX_PAGE_SIZE)
        offset = max(filters.offset, 0)
        query = query.order_by(Shipment.created_at.desc(), Shipment.id.desc()).offset(offset).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_by_product(self, product_id: int, business_id: str) -> List[Shipment]:
        """All of a business's shipments for one product, newest first."""
        result = await self.db.execute(
            select(Shipment)
            .where(Shipment.product_id == product_id, Shipment.business_id == business_id)
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
        )
        return list(result.scalars().all())


# Factory function for dependency injection
def get_fulfillment_gateway(
    db: AsyncSession,
    fetcher: Optional[TrackingFetcher] = None,
    notifier: Optional[ShipmentNotifier] = None,
) -> FulfillmentGateway:
    """Create fulfillment gateway instance."""
    return FulfillmentGateway(db, fetcher=fetcher, notifier=notifier)
