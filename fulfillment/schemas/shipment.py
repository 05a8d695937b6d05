"""
Shipment Schemas

Pydantic models for the fulfillment API.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ==================== Requests ====================


class ShipmentCreate(BaseModel):
    """Create a shipment for one order line."""
    order_id: Optional[str] = Field(None, max_length=100)
    product_id: Optional[int] = None
    buyer_business_id: Optional[str] = Field(None, max_length=64)
    buyer_name: Optional[str] = Field(None, max_length=255)
    buyer_email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None
    carrier: Optional[str] = Field(None, max_length=50)
    tracking_number: Optional[str] = Field(None, max_length=100)
    # Clamped to >= 1 by the state machine
    quantity: Any = 1
    status: Optional[str] = Field(None, description="Initial status, defaults to Processing")
    note: Optional[str] = Field(None, max_length=500)


class ShipmentStatusUpdate(BaseModel):
    """Request a status transition."""
    status: str = Field(..., description="Pending, Processing, In Transit, Delivered, Canceled or Cancelled")
    note: Optional[str] = Field(None, max_length=500)
    carrier: Optional[str] = Field(None, max_length=50)
    tracking_number: Optional[str] = Field(None, max_length=100)

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v):
        # Unknown values are audited downstream, not rejected here
        return "" if v is None else str(v)


# ==================== Responses ====================


class HistoryEntry(BaseModel):
    status: str
    note: Optional[str] = None
    at: Optional[str] = None


class TrackingEventResponse(BaseModel):
    status: str
    description: Optional[str] = None
    timestamp: Optional[str] = None
    location: Optional[str] = None
    raw_status: Optional[str] = None


class ShipmentResponse(BaseModel):
    """Full shipment view for the owning business."""
    id: int
    business_id: str
    buyer_business_id: Optional[str] = None
    order_id: Optional[str] = None
    product_id: Optional[int] = None
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    address: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    status: str
    quantity: int
    notes: Optional[str] = None
    inventory_counted: bool
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    live_status: Optional[str] = None
    live_events: Optional[List[Dict[str, Any]]] = None
    estimated_delivery: Optional[str] = None
    last_tracking_update: Optional[datetime] = None
    history: List[HistoryEntry] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PublicShipmentResponse(BaseModel):
    """Unauthenticated tracking view. No buyer details."""
    id: int
    order_id: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    status: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    live_status: Optional[str] = None
    live_events: Optional[List[Dict[str, Any]]] = None
    estimated_delivery: Optional[str] = None
    history: List[HistoryEntry] = []

    class Config:
        from_attributes = True


class ShipmentListResponse(BaseModel):
    shipments: List[ShipmentResponse]
    count: int
    limit: int
    offset: int


class StatusUpdateResponse(BaseModel):
    shipment: ShipmentResponse
    previous_status: str
    status_changed: bool
    rejected_status: Optional[str] = None
    inventory_claimed: bool = False


class TrackingResponse(BaseModel):
    """Live tracking refresh result. available=False when the carrier had nothing."""
    shipment_id: int
    available: bool
    status: Optional[str] = None
    carrier_status: Optional[str] = None
    estimated_delivery: Optional[str] = None
    last_update: Optional[datetime] = None
    events: List[TrackingEventResponse] = []
