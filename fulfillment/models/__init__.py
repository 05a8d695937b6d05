from fulfillment.models.product import Product
from fulfillment.models.shipment import Shipment, ShipmentStatus, TERMINAL_STATUSES
from fulfillment.models.order import Order, OrderFulfillmentStatus

__all__ = [
    "Product",
    "Shipment",
    "ShipmentStatus",
    "TERMINAL_STATUSES",
    "Order",
    "OrderFulfillmentStatus",
]
