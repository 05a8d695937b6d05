"""
API dependencies
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.database import get_db
from fulfillment.modules.shipping.tracking import TrackingFetcher
from fulfillment.services.fulfillment_gateway import FulfillmentGateway, get_fulfillment_gateway
from fulfillment.services.notifications import ShipmentNotifier


async def get_current_business_id(
    x_business_id: Optional[str] = Header(None, alias="X-Business-Id"),
) -> str:
    """Caller's business, set by the upstream session middleware."""
    business_id = (x_business_id or "").strip()
    if not business_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Business identity required",
        )
    return business_id


def get_tracking_fetcher(request: Request) -> Optional[TrackingFetcher]:
    """Fetcher built in the application lifespan."""
    return getattr(request.app.state, "tracking_fetcher", None)


def get_notifier(request: Request) -> ShipmentNotifier:
    notifier = getattr(request.app.state, "notifier", None)
    return notifier or ShipmentNotifier()


async def get_gateway(
    db: AsyncSession = Depends(get_db),
    fetcher: Optional[TrackingFetcher] = Depends(get_tracking_fetcher),
    notifier: ShipmentNotifier = Depends(get_notifier),
) -> FulfillmentGateway:
    return get_fulfillment_gateway(db, fetcher=fetcher, notifier=notifier)
