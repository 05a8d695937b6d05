"""
Product model

Catalog CRUD lives elsewhere; fulfillment only moves the stock and
sales counters, and only through a single atomic UPDATE.
"""
from sqlalchemy import Column, Integer, String, DateTime

from fulfillment.core.database import Base
from fulfillment.models.shipment import utcnow


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    business_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    stock = Column(Integer, nullable=False, default=0)
    sold_count = Column(Integer, nullable=False, default=0)
    sold_orders = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Product {self.id} stock={self.stock}>"
