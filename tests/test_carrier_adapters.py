"""
Tests for courier adapters, the carrier registry and TrackingFetcher.

All HTTP goes through httpx.MockTransport.
"""
import json

import httpx
import pytest

from fulfillment.core.config import Settings
from fulfillment.core.monitoring import metrics
from fulfillment.modules.shipping.carriers import (
    CarrierRegistry,
    build_carrier_registry,
    get_registered_carriers,
)
from fulfillment.modules.shipping.carriers.couriers import (
    AramexCarrier,
    CourierGuyCarrier,
    FastwayCarrier,
)
from fulfillment.modules.shipping.carriers.shippo import ShippoCarrier
from fulfillment.modules.shipping.status import TrackingStatus
from fulfillment.modules.shipping.tracking import TrackingFetcher


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "ENVIRONMENT": "development",
        "COURIER_GUY_API_KEY": "cg-key",
        "SHIPPO_TOKEN": "shippo_live_abc123",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCourierAdapters:

    @pytest.mark.asyncio
    async def test_courier_guy_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"TrackingResults": [{"Status": "In Transit"}]})

        async with mock_client(handler) as client:
            adapter = CourierGuyCarrier.from_settings("COURIER_GUY", make_settings(), client)
            raw = await adapter.track("TCG123")

        assert raw == {"TrackingResults": [{"Status": "In Transit"}]}
        assert seen["method"] == "GET"
        assert seen["url"] == "https://api.thecourierguy.co.za/tracking/TCG123"
        assert seen["auth"] == "Bearer cg-key"

    @pytest.mark.asyncio
    async def test_courier_guy_without_key_sends_no_auth(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={})

        async with mock_client(handler) as client:
            adapter = CourierGuyCarrier.from_settings(
                "COURIER_GUY", make_settings(COURIER_GUY_API_KEY=None), client
            )
            assert await adapter.track("TCG123") == {}

        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_fastway_request_shape(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"tracking_results": {"status": "Delivered"}})

        async with mock_client(handler) as client:
            adapter = FastwayCarrier.from_settings("FASTWAY", make_settings(), client)
            await adapter.track("FW 42")

        assert seen["url"] == "https://api.fastway.org/v1/track/FW%2042"

    @pytest.mark.asyncio
    async def test_aramex_posts_shipment_number(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"TrackingResults": []})

        async with mock_client(handler) as client:
            adapter = AramexCarrier.from_settings("ARAMEX", make_settings(), client)
            await adapter.track("AX1")

        assert seen["method"] == "POST"
        assert seen["url"] == "https://ws.aramex.com/tracking"
        assert seen["body"] == {"Shipments": ["AX1"], "GetLastTrackingUpdateOnly": False}

    @pytest.mark.asyncio
    async def test_shippo_request_shape(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"tracking_status": {"status": "TRANSIT"}})

        async with mock_client(handler) as client:
            adapter = ShippoCarrier.from_settings("usps", make_settings(), client)
            await adapter.track("9400 1")

        assert seen["url"] == "https://api.goshippo.com/tracks/usps/9400%201"
        assert seen["auth"] == "ShippoToken shippo_live_abc123"


class TestCarrierFailures:
    """Every failure mode is logged and reported as None."""

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler) as client:
            adapter = FastwayCarrier.from_settings("FASTWAY", make_settings(), client)
            assert await adapter.track("FW1") is None

        assert metrics.get_counter(
            "carrier_requests_total", {"carrier": "FASTWAY", "outcome": "timeout"}
        ) == 1

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with mock_client(handler) as client:
            adapter = FastwayCarrier.from_settings("FASTWAY", make_settings(), client)
            assert await adapter.track("FW1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 404, 500, 503])
    async def test_non_2xx(self, status_code):
        async with mock_client(lambda request: httpx.Response(status_code, json={"error": "x"})) as client:
            adapter = CourierGuyCarrier.from_settings("COURIER_GUY", make_settings(), client)
            assert await adapter.track("TCG1") is None

    @pytest.mark.asyncio
    async def test_misconfigured_base_url(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        settings = make_settings(FASTWAY_BASE_URL="https://api.fastway.org:notaport")
        async with mock_client(handler) as client:
            adapter = FastwayCarrier.from_settings("FASTWAY", settings, client)
            assert await adapter.track("FW1") is None

            fetcher = TrackingFetcher(build_carrier_registry(settings, client))
            assert await fetcher.fetch_live_tracking("FASTWAY", "FW1") is None

        assert calls == []
        assert metrics.get_counter(
            "carrier_requests_total", {"carrier": "FASTWAY", "outcome": "error"}
        ) == 2

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        async with mock_client(lambda request: httpx.Response(200, content=b"<html>oops</html>")) as client:
            adapter = AramexCarrier.from_settings("ARAMEX", make_settings(), client)
            assert await adapter.track("AX1") is None

        assert metrics.get_counter(
            "carrier_requests_total", {"carrier": "ARAMEX", "outcome": "bad_payload"}
        ) == 1

    @pytest.mark.asyncio
    async def test_json_array_instead_of_object(self):
        async with mock_client(lambda request: httpx.Response(200, json=[1, 2])) as client:
            adapter = AramexCarrier.from_settings("ARAMEX", make_settings(), client)
            assert await adapter.track("AX1") is None

    @pytest.mark.asyncio
    async def test_shippo_without_token_fails_the_call_not_construction(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        async with mock_client(handler) as client:
            adapter = ShippoCarrier.from_settings("ups", make_settings(SHIPPO_TOKEN=None), client)
            assert await adapter.track("1Z") is None

        assert calls == []


class TestCarrierRegistry:

    @pytest.mark.asyncio
    async def test_builds_every_registered_carrier(self):
        async with mock_client(lambda r: httpx.Response(200, json={})) as client:
            registry = build_carrier_registry(make_settings(), client)

        assert set(registry) == set(get_registered_carriers())
        assert {"COURIER_GUY", "FASTWAY", "ARAMEX", "ups", "usps", "fedex", "dhl_express", "shippo"} <= set(registry)

    @pytest.mark.asyncio
    async def test_disabled_carriers_left_out(self):
        async with mock_client(lambda r: httpx.Response(200, json={})) as client:
            registry = build_carrier_registry(make_settings(DISABLED_CARRIERS="fastway, UPS"), client)

        assert "FASTWAY" not in registry
        assert "ups" not in registry
        assert "ARAMEX" in registry

    @pytest.mark.asyncio
    async def test_registry_is_read_only(self):
        async with mock_client(lambda r: httpx.Response(200, json={})) as client:
            registry = build_carrier_registry(make_settings(), client)

        assert isinstance(registry, CarrierRegistry)
        with pytest.raises(TypeError):
            registry["NEW"] = object()

    @pytest.mark.asyncio
    async def test_resolve(self):
        async with mock_client(lambda r: httpx.Response(200, json={})) as client:
            registry = build_carrier_registry(make_settings(), client)

        assert isinstance(registry.resolve("UPS"), ShippoCarrier)
        assert registry.resolve("UPS").carrier_code == "ups"
        assert isinstance(registry.resolve("ARAMEX_STORE_TO_DOOR"), AramexCarrier)
        assert isinstance(registry.resolve("courier_guy"), CourierGuyCarrier)
        assert registry.resolve("PAXI") is None
        assert registry.resolve("OTHER") is None
        assert registry.resolve("") is None


class TestTrackingFetcher:

    @pytest.mark.asyncio
    async def test_fetches_and_parses(self):
        def handler(request):
            return httpx.Response(200, json={
                "TrackingResults": [{"Status": "Out for delivery", "EstimatedDeliveryDate": "2026-10-19"}]
            })

        async with mock_client(handler) as client:
            fetcher = TrackingFetcher(build_carrier_registry(make_settings(), client))
            snapshot = await fetcher.fetch_live_tracking("COURIER_GUY", "TCG1")

        assert snapshot.status == TrackingStatus.OUT_FOR_DELIVERY
        assert snapshot.estimated_delivery == "2026-10-19"
        assert snapshot.last_update is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("carrier,tracking_number", [
        ("", "TN1"),
        ("COURIER_GUY", ""),
        (None, "TN1"),
        ("COURIER_GUY", None),
        ("OTHER", "TN1"),
        ("other", "TN1"),
        ("PAXI", "TN1"),
        ("Bob's Bikes", "TN1"),
    ])
    async def test_returns_none_without_calling_out(self, carrier, tracking_number):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        async with mock_client(handler) as client:
            fetcher = TrackingFetcher(build_carrier_registry(make_settings(), client))
            assert await fetcher.fetch_live_tracking(carrier, tracking_number) is None

        assert calls == []

    @pytest.mark.asyncio
    async def test_outage_yields_none(self):
        async with mock_client(lambda r: httpx.Response(503)) as client:
            fetcher = TrackingFetcher(build_carrier_registry(make_settings(), client))
            assert await fetcher.fetch_live_tracking("FASTWAY", "FW1") is None

    @pytest.mark.asyncio
    async def test_shippo_test_key_skips_real_carriers(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, json={"tracking_status": {"status": "DELIVERED"}})

        settings = make_settings(SHIPPO_TOKEN="shippo_test_xyz")
        async with mock_client(handler) as client:
            fetcher = TrackingFetcher(build_carrier_registry(settings, client))
            assert await fetcher.fetch_live_tracking("ups", "1Z") is None
            snapshot = await fetcher.fetch_live_tracking("shippo", "SHIPPO_DELIVERED")

        assert snapshot.status == TrackingStatus.DELIVERED
        assert calls == ["https://api.goshippo.com/tracks/shippo/SHIPPO_DELIVERED"]

    @pytest.mark.asyncio
    async def test_parser_failure_yields_none(self, monkeypatch):
        import fulfillment.modules.shipping.tracking as tracking_module

        def broken_parser(parser_key, raw):
            raise KeyError("boom")

        monkeypatch.setattr(tracking_module, "parse_tracking", broken_parser)

        async with mock_client(lambda r: httpx.Response(200, json={"tracking_results": {}})) as client:
            fetcher = TrackingFetcher(build_carrier_registry(make_settings(), client))
            assert await fetcher.fetch_live_tracking("FASTWAY", "FW1") is None
