"""HTTP distance oracle and side-effect gateway tests (mocked with respx)."""

import json

import httpx
import pytest
import respx
from httpx import Response

from carpool.domain.entities import Location
from carpool.domain.enums import NotificationType
from carpool.domain.errors import OracleUnavailable
from carpool.infrastructure.gateways import (
    NotificationGateway,
    NotificationMessage,
    PaymentGateway,
    PaymentInitiation,
)
from carpool.infrastructure.routing import OpenRouteServiceOracle, Region

DIRECTIONS_URL = "https://ors.test/v2/directions/driving-car"
GEOCODE_URL = "https://nominatim.test/search"

PUNE = Location(18.5204, 73.8567)
MUMBAI = Location(19.0760, 72.8777)


@pytest.fixture
def ors() -> OpenRouteServiceOracle:
    return OpenRouteServiceOracle(
        api_key="test-key",
        directions_url=DIRECTIONS_URL,
        geocode_url=GEOCODE_URL,
        region=Region(min_lat=8.0, max_lat=37.0, min_lng=68.0, max_lng=97.0),
        timeout=1.0,
    )


def directions(distance_m: float, duration_s: float) -> dict:
    return {
        "features": [
            {"properties": {"summary": {"distance": distance_m, "duration": duration_s}}}
        ]
    }


class TestDirections:
    @pytest.mark.asyncio
    async def test_route_converts_units(self, ors):
        async with respx.mock:
            route = respx.get(DIRECTIONS_URL).mock(
                return_value=Response(200, json=directions(148_234.0, 10_800.0))
            )

            estimate = await ors.route(PUNE, MUMBAI)

            assert route.called
            request = route.calls.last.request
            assert request.url.params["start"] == "73.8567,18.5204"
            assert request.url.params["end"] == "72.8777,19.076"
            assert request.headers["Authorization"] == "test-key"
            assert estimate.distance_km == 148.23
            assert estimate.duration_minutes == 180

    @pytest.mark.asyncio
    async def test_zero_length_route_has_no_summary_fields(self, ors):
        async with respx.mock:
            respx.get(DIRECTIONS_URL).mock(
                return_value=Response(
                    200, json={"features": [{"properties": {"summary": {}}}]}
                )
            )
            assert await ors.distance_km(PUNE, PUNE) == 0.0

    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self, ors):
        async with respx.mock:
            respx.get(DIRECTIONS_URL).mock(return_value=Response(403))
            with pytest.raises(OracleUnavailable, match="403"):
                await ors.route(PUNE, MUMBAI)

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, ors):
        async with respx.mock:
            respx.get(DIRECTIONS_URL).mock(side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(OracleUnavailable, match="timed out"):
                await ors.route(PUNE, MUMBAI)

    @pytest.mark.asyncio
    async def test_empty_features_is_unavailable(self, ors):
        async with respx.mock:
            respx.get(DIRECTIONS_URL).mock(
                return_value=Response(200, json={"features": []})
            )
            with pytest.raises(OracleUnavailable, match="Malformed"):
                await ors.route(PUNE, MUMBAI)


class TestGeocode:
    @pytest.mark.asyncio
    async def test_geocode_returns_first_hit(self, ors):
        async with respx.mock:
            route = respx.get(GEOCODE_URL).mock(
                return_value=Response(
                    200,
                    json=[{"lat": "18.5204", "lon": "73.8567", "display_name": "Pune"}],
                )
            )

            location = await ors.geocode("Pune")

            params = route.calls.last.request.url.params
            assert params["q"] == "Pune"
            assert params["countrycodes"] == "in"
            assert params["limit"] == "1"
            assert location == Location(18.5204, 73.8567)

    @pytest.mark.asyncio
    async def test_no_hits_is_unavailable(self, ors):
        async with respx.mock:
            respx.get(GEOCODE_URL).mock(return_value=Response(200, json=[]))
            with pytest.raises(OracleUnavailable, match="No geocoding result"):
                await ors.geocode("Atlantis")

    @pytest.mark.asyncio
    async def test_result_outside_region_is_rejected(self, ors):
        async with respx.mock:
            respx.get(GEOCODE_URL).mock(
                return_value=Response(200, json=[{"lat": "51.5", "lon": "-0.12"}])
            )
            with pytest.raises(OracleUnavailable, match="outside the service region"):
                await ors.geocode("London")


class TestGateways:
    @pytest.mark.asyncio
    async def test_payment_posts_json(self):
        gateway = PaymentGateway("https://pay.test/process")
        async with respx.mock:
            route = respx.post("https://pay.test/process").mock(
                return_value=Response(200, json={"status": "SUCCESS"})
            )

            await gateway.initiate(PaymentInitiation(ride_id=3, rider_id=9, amount=141.2))

            body = json.loads(route.calls.last.request.content)
            assert body == {"ride_id": 3, "rider_id": 9, "amount": 141.2, "method": "UPI"}

    @pytest.mark.asyncio
    async def test_notification_failure_raises(self):
        gateway = NotificationGateway("https://notify.test/send")
        async with respx.mock:
            respx.post("https://notify.test/send").mock(return_value=Response(500))
            with pytest.raises(httpx.HTTPStatusError):
                await gateway.send(
                    NotificationMessage(
                        user_id=1, message="hi", type=NotificationType.MATCH_FOUND
                    )
                )
