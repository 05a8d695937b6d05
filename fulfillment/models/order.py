"""
Order model

Orders are owned by the checkout subsystem. Fulfillment only reads
`order_id` and writes the `fulfillment` subdocument.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON

from fulfillment.core.database import Base
from fulfillment.models.shipment import utcnow


class OrderFulfillmentStatus:
    """Mirrored fulfillment vocabulary stored on the order."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(100), unique=True, nullable=False, index=True)
    buyer_email = Column(String(255), nullable=True)

    # Payment/checkout status, not written by fulfillment
    status = Column(String(30), nullable=False, default="pending")

    # {status, carrier, carrierLabel, trackingNumber, trackingUrl,
    #  shippedAt, deliveredAt, updatedAt, history: [{status, note, at}]}
    fulfillment = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Order {self.order_id}>"
