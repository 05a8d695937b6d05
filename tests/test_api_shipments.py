"""
Tests for the shipment API routes.

Runs the FastAPI app in-process over httpx.ASGITransport with the
database dependency pointed at the test engine. Live tracking is off.
"""
import httpx
import pytest
import pytest_asyncio

from fulfillment.api.deps import get_tracking_fetcher
from fulfillment.core.database import get_db
from fulfillment.main import app
from tests.helpers import BUSINESS_ID, OTHER_BUSINESS_ID, load_product

SELLER = {"X-Business-Id": BUSINESS_ID}
OTHER_SELLER = {"X-Business-Id": OTHER_BUSINESS_ID}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_tracking_fetcher] = lambda: None
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


async def create(client, **overrides):
    payload = {
        "order_id": "ORD-1001",
        "buyer_name": "Peter Parker",
        "buyer_email": "buyer@example.com",
        "address": "20 Ingram St, Queens",
        "carrier": "UPS",
        "tracking_number": "1Z999",
        "quantity": 2,
    }
    payload.update(overrides)
    response = await client.post("/api/shipments", json=payload, headers=SELLER)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:

    @pytest.mark.asyncio
    async def test_business_header_required(self, client):
        response = await client.get("/api/shipments")
        assert response.status_code == 401
        assert response.json()["detail"] == "Business identity required"

    @pytest.mark.asyncio
    async def test_public_lookup_needs_no_header(self, client):
        await create(client)
        response = await client.get("/api/shipments/track", params={"q": "1Z999"})
        assert response.status_code == 200


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_defaults(self, client):
        body = await create(client, quantity=0)

        assert body["business_id"] == BUSINESS_ID
        assert body["status"] == "Processing"
        assert body["quantity"] == 1
        assert body["inventory_counted"] is False
        assert len(body["history"]) == 1

    @pytest.mark.asyncio
    async def test_create_as_delivered_claims_inventory(self, client, session_factory, product):
        body = await create(client, product_id=product.id, status="Delivered")

        assert body["status"] == "Delivered"
        assert body["inventory_counted"] is True
        assert (await load_product(session_factory, product.id)).stock == 8

    @pytest.mark.asyncio
    async def test_create_with_unknown_product(self, client):
        response = await client.post(
            "/api/shipments",
            json={"order_id": "ORD-1001", "product_id": 9999},
            headers=SELLER,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ProductNotFound"
        assert "Retry-After" not in response.headers

    @pytest.mark.asyncio
    async def test_seller_note_returned(self, client):
        body = await create(client, note="Leave at reception")
        assert body["notes"] == "Leave at reception"
        assert body["history"][0]["note"] == "Shipment created"


class TestReads:

    @pytest.mark.asyncio
    async def test_get_owned(self, client):
        created = await create(client)
        response = await client.get(f"/api/shipments/{created['id']}", headers=SELLER)
        assert response.status_code == 200
        assert response.json()["tracking_number"] == "1Z999"

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        response = await client.get("/api/shipments/999", headers=SELLER)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    @pytest.mark.asyncio
    async def test_get_other_business(self, client):
        created = await create(client)
        response = await client.get(f"/api/shipments/{created['id']}", headers=OTHER_SELLER)
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client):
        await create(client)
        await create(client, order_id="ORD-2", status="In Transit")

        response = await client.get("/api/shipments", headers=SELLER)
        assert response.json()["count"] == 2

        response = await client.get("/api/shipments", params={"status": "in_transit"}, headers=SELLER)
        body = response.json()
        assert body["count"] == 1
        assert body["shipments"][0]["order_id"] == "ORD-2"

        response = await client.get("/api/shipments", headers=OTHER_SELLER)
        assert response.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_list_invalid_status_filter(self, client):
        response = await client.get("/api/shipments", params={"status": "Shipped"}, headers=SELLER)
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidStatus"

    @pytest.mark.asyncio
    async def test_client_error_message_not_masked(self, client):
        response = await client.get("/api/shipments", params={"status": "monkey"}, headers=SELLER)
        assert response.status_code == 422
        assert response.json()["message"] == "Invalid shipment status: 'monkey'"

    @pytest.mark.asyncio
    async def test_list_by_product(self, client, product):
        await create(client, product_id=product.id)
        await create(client)

        response = await client.get(f"/api/shipments/by-product/{product.id}", headers=SELLER)
        assert response.json()["count"] == 1


class TestPublicTrack:

    @pytest.mark.asyncio
    async def test_track_by_tracking_number(self, client):
        await create(client)
        response = await client.get("/api/shipments/track", params={"q": " 1Z999 "})
        body = response.json()

        assert body["status"] == "Processing"
        assert body["tracking_url"] == "https://www.ups.com/track?tracknum=1Z999"
        assert "buyer_email" not in body
        assert "address" not in body

    @pytest.mark.asyncio
    async def test_track_unknown(self, client):
        response = await client.get("/api/shipments/track", params={"q": "TRK-999"})
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"


class TestStatusUpdates:

    @pytest.mark.asyncio
    async def test_transition(self, client):
        created = await create(client)
        response = await client.post(
            f"/api/shipments/{created['id']}/status",
            json={"status": "In Transit", "note": "Collected"},
            headers=SELLER,
        )
        body = response.json()

        assert response.status_code == 200
        assert body["previous_status"] == "Processing"
        assert body["status_changed"] is True
        assert body["rejected_status"] is None
        assert body["shipment"]["status"] == "In Transit"
        assert body["shipment"]["shipped_at"] is not None

    @pytest.mark.asyncio
    async def test_unknown_status_is_audited_not_failed(self, client):
        created = await create(client)
        response = await client.post(
            f"/api/shipments/{created['id']}/status",
            json={"status": "Shipped"},
            headers=SELLER,
        )
        body = response.json()

        assert response.status_code == 200
        assert body["status_changed"] is False
        assert body["rejected_status"] == "Shipped"
        assert body["shipment"]["status"] == "Processing"
        assert "InvalidStatus" in body["shipment"]["history"][-1]["note"]

    @pytest.mark.asyncio
    async def test_other_business_cannot_transition(self, client):
        created = await create(client)
        response = await client.post(
            f"/api/shipments/{created['id']}/status",
            json={"status": "Delivered"},
            headers=OTHER_SELLER,
        )
        assert response.status_code == 403


class TestRefreshAndDelete:

    @pytest.mark.asyncio
    async def test_refresh_without_tracking(self, client):
        created = await create(client)
        response = await client.post(f"/api/shipments/{created['id']}/refresh", headers=SELLER)

        assert response.status_code == 200
        assert response.json()["available"] is False

    @pytest.mark.asyncio
    async def test_delete(self, client):
        created = await create(client)

        response = await client.delete(f"/api/shipments/{created['id']}", headers=SELLER)
        assert response.status_code == 204

        response = await client.get(f"/api/shipments/{created['id']}", headers=SELLER)
        assert response.status_code == 404


class TestOps:

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        response = await client.get("/metrics")
        assert response.status_code == 200
