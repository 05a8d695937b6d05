"""
Shipment model

One shipment per (order, product) line handed to a courier by a seller
business. History is append-only; the live-tracking cache is advisory
and never drives `status`.
"""
import enum
import re
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, JSON, ForeignKey, Index
)

from fulfillment.core.database import Base


class ShipmentStatus(str, enum.Enum):
    """Shipment status of record.

    Both cancel spellings exist in stored data and are kept as distinct values.
    """
    PENDING = "Pending"
    PROCESSING = "Processing"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELED = "Canceled"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: Any) -> Optional["ShipmentStatus"]:
        """Resolve caller input ("in_transit", "IN TRANSIT", ...) to a status, or None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = _normalize_key(value)
        if not key:
            return None
        return _STATUS_KEYS.get(key)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self in (ShipmentStatus.CANCELED, ShipmentStatus.CANCELLED)


def _normalize_key(value: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", value.upper())


_STATUS_KEYS = {_normalize_key(s.value): s for s in ShipmentStatus}

TERMINAL_STATUSES = frozenset(
    {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELED, ShipmentStatus.CANCELLED}
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Shipment(Base):
    """
    A seller's shipment of one product line.

    inventory_counted flips false -> true at most once, through a
    conditional UPDATE, when the shipment is first delivered.
    """
    __tablename__ = "shipments"
    __table_args__ = (
        Index("ix_shipments_business_status", "business_id", "status"),
        Index("ix_shipments_order_id", "order_id"),
        Index("ix_shipments_tracking_number", "tracking_number"),
    )

    id = Column(Integer, primary_key=True)

    # Ownership
    business_id = Column(String(64), nullable=False, index=True)
    buyer_business_id = Column(String(64), nullable=True)

    # Linkage (order_id is a free-text reference, several shipments may share it)
    order_id = Column(String(100), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True, index=True)

    # Buyer snapshot, denormalized at creation
    buyer_name = Column(String(255), nullable=True)
    buyer_email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)

    # Logistics
    carrier = Column(String(50), nullable=True)
    tracking_number = Column(String(100), nullable=True)

    # Live tracking cache
    live_status = Column(String(30), nullable=True)
    live_events = Column(JSON, nullable=True)
    estimated_delivery = Column(String(50), nullable=True)
    last_tracking_update = Column(DateTime(timezone=True), nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default=ShipmentStatus.PROCESSING.value)
    quantity = Column(Integer, nullable=False, default=1)
    inventory_counted = Column(Boolean, nullable=False, default=False)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # [{status, note, at}]
    history = Column(JSON, nullable=False, default=list)

    # Seller's note given at creation; history always opens with "Shipment created"
    notes = Column(Text, nullable=True)

    # Bumped on every UPDATE; a writer holding an older copy gets StaleDataError
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> Optional[ShipmentStatus]:
        return ShipmentStatus.parse(self.status)

    @property
    def is_delivered(self) -> bool:
        return self.status == ShipmentStatus.DELIVERED.value

    @property
    def is_active(self) -> bool:
        status = self.status_enum
        return status is not None and not status.is_terminal

    def append_history(self, status: str, note: str, at: Optional[datetime] = None) -> dict:
        """Append one history entry. Reassigns the list so the JSON change is flushed."""
        entry = {"status": status, "note": note, "at": (at or utcnow()).isoformat()}
        self.history = list(self.history or []) + [entry]
        return entry

    def __repr__(self):
        return f"<Shipment {self.id} order={self.order_id} status={self.status}>"
