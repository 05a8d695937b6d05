"""
Shipment API Routes

- Sellers create shipments and move them through their lifecycle
- Live tracking refresh from the courier
- Public lookup by order reference or tracking number

Fulfillment errors are translated to HTTP responses by the handlers in
core/error_handler.py.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from fulfillment.api.deps import get_current_business_id, get_gateway
from fulfillment.models.shipment import Shipment
from fulfillment.modules.shipping.carriers.normalize import get_tracking_url
from fulfillment.schemas.shipment import (
    PublicShipmentResponse,
    ShipmentCreate,
    ShipmentListResponse,
    ShipmentResponse,
    ShipmentStatusUpdate,
    StatusUpdateResponse,
    TrackingEventResponse,
    TrackingResponse,
)
from fulfillment.services.fulfillment_gateway import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    FulfillmentGateway,
    ShipmentFilter,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipments", tags=["shipments"])


def public_view(shipment: Shipment) -> PublicShipmentResponse:
    response = PublicShipmentResponse.model_validate(shipment)
    response.tracking_url = get_tracking_url(shipment.carrier, shipment.tracking_number)
    return response


# ==================== Public ====================


@router.get("/track", response_model=PublicShipmentResponse)
async def track_shipment(
    q: Optional[str] = Query(None, description="Order reference or tracking number"),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    """Look up a shipment by order reference or tracking number."""
    shipment = await gateway.find_by_order_or_tracking_number(q)
    return public_view(shipment)


# ==================== Seller ====================


@router.post("", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    payload: ShipmentCreate,
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    data = payload.model_dump()
    initial_status = data.pop("status")
    shipment = await gateway.create_shipment(business_id, initial_status=initial_status, **data)
    return ShipmentResponse.model_validate(shipment)


@router.get("", response_model=ShipmentListResponse)
async def list_shipments(
    status_filter: Optional[str] = Query(None, alias="status"),
    product_id: Optional[int] = Query(None),
    order_id: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    shipments = await gateway.list_by_business(
        business_id,
        ShipmentFilter(
            status=status_filter,
            product_id=product_id,
            order_id=order_id,
            limit=limit,
            offset=offset,
        ),
    )
    return ShipmentListResponse(
        shipments=[ShipmentResponse.model_validate(s) for s in shipments],
        count=len(shipments),
        limit=limit,
        offset=offset,
    )


@router.get("/by-product/{product_id}", response_model=ShipmentListResponse)
async def list_product_shipments(
    product_id: int,
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    shipments = await gateway.list_by_product(product_id, business_id)
    return ShipmentListResponse(
        shipments=[ShipmentResponse.model_validate(s) for s in shipments],
        count=len(shipments),
        limit=len(shipments),
        offset=0,
    )


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(
    shipment_id: int,
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    shipment = await gateway.get_shipment(shipment_id, business_id)
    return ShipmentResponse.model_validate(shipment)


@router.post("/{shipment_id}/status", response_model=StatusUpdateResponse)
async def update_shipment_status(
    shipment_id: int,
    payload: ShipmentStatusUpdate,
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    result = await gateway.update_status(
        shipment_id,
        payload.status,
        business_id,
        note=payload.note,
        carrier=payload.carrier,
        tracking_number=payload.tracking_number,
    )
    return StatusUpdateResponse(
        shipment=ShipmentResponse.model_validate(result.shipment),
        previous_status=result.previous_status,
        status_changed=result.status_changed,
        rejected_status=payload.status if result.rejected else None,
        inventory_claimed=result.inventory_claimed,
    )


@router.post("/{shipment_id}/refresh", response_model=TrackingResponse)
async def refresh_tracking(
    shipment_id: int,
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    snapshot = await gateway.refresh_live_tracking(shipment_id, business_id)
    if snapshot is None:
        return TrackingResponse(shipment_id=shipment_id, available=False)

    return TrackingResponse(
        shipment_id=shipment_id,
        available=True,
        status=snapshot.status.value,
        carrier_status=snapshot.carrier_status,
        estimated_delivery=snapshot.estimated_delivery,
        last_update=snapshot.last_update,
        events=[TrackingEventResponse(**event.to_dict()) for event in snapshot.events],
    )


@router.delete("/{shipment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shipment(
    shipment_id: int,
    business_id: str = Depends(get_current_business_id),
    gateway: FulfillmentGateway = Depends(get_gateway),
):
    await gateway.delete_shipment(shipment_id, business_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
