"""
Marketplace Fulfillment
FastAPI application entry point

- Shared httpx client for courier APIs, closed on shutdown
- Carrier registry built once and injected through app.state
- Fulfillment error translation and error sanitization middleware
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from fulfillment.api.routes import shipments
from fulfillment.core.config import settings
from fulfillment.core.database import AsyncSessionLocal, init_models
from fulfillment.core.error_handler import register_error_handlers
from fulfillment.core.monitoring import configure_logging, metrics
from fulfillment.modules.shipping.carriers import build_carrier_registry
from fulfillment.modules.shipping.tracking import TrackingFetcher
from fulfillment.services.notifications import ShipmentNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build carrier adapters on startup, release the HTTP client on shutdown."""
    configure_logging()

    if settings.ENVIRONMENT != "production":
        await init_models()

    http_client = httpx.AsyncClient(timeout=settings.CARRIER_TIMEOUT_SECONDS)
    registry = build_carrier_registry(settings, http_client)
    app.state.carrier_registry = registry
    app.state.tracking_fetcher = TrackingFetcher(registry)
    app.state.notifier = ShipmentNotifier()
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")

    yield

    await http_client.aclose()
    logger.info("Carrier HTTP client closed")


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    version="1.0.0",
)

register_error_handlers(app)

app.include_router(shipments.router, prefix="/api", tags=["Shipments"])


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check with DB ping. Returns 503 if the database is unreachable."""
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "carriers": sorted(getattr(app.state, "carrier_registry", {}) or []),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/metrics", tags=["Health"])
async def get_metrics():
    """In-memory counters and carrier latency histograms."""
    return metrics.get_all_metrics()
