"""
Road-network Distance Oracle.

* Distance / duration: OpenRouteService directions (``driving-car``).
* Geocoding: Nominatim search, restricted to one country and to the
  service-region bounding box.

Every failure (timeout, network error, HTTP error, malformed payload,
out-of-region result) surfaces as ``OracleUnavailable``; nothing is guessed.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ValidationError

from carpool.domain.distance import DistanceOracle, RouteEstimate
from carpool.domain.entities import Location
from carpool.domain.errors import OracleUnavailable

logger = logging.getLogger(__name__)


class RouteSummary(BaseModel):
    # ORS omits both fields for zero-length routes
    distance: float = 0.0  # metres
    duration: float = 0.0  # seconds


class _RouteProperties(BaseModel):
    summary: RouteSummary


class _RouteFeature(BaseModel):
    properties: _RouteProperties


class DirectionsResponse(BaseModel):
    features: list[_RouteFeature]


class GeocodeHit(BaseModel):
    lat: float
    lon: float
    display_name: str = ""


class Region(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


class OpenRouteServiceOracle(DistanceOracle):
    def __init__(
        self,
        api_key: str,
        directions_url: str,
        geocode_url: str,
        region: Region,
        country_code: str = "in",
        user_agent: str = "CarpoolApp/1.0",
        timeout: float = 5.0,
    ):
        self.api_key = api_key
        self.directions_url = directions_url
        self.geocode_url = geocode_url
        self.region = region
        self.country_code = country_code
        self.user_agent = user_agent
        self.timeout = timeout

    async def route(self, origin: Location, destination: Location) -> RouteEstimate:
        params = {
            "start": f"{origin.longitude},{origin.latitude}",
            "end": f"{destination.longitude},{destination.latitude}",
        }
        headers = {"Authorization": self.api_key, "Accept": "application/geo+json"}
        payload = await self._get_json(self.directions_url, params, headers)

        try:
            directions = DirectionsResponse.model_validate(payload)
            summary = directions.features[0].properties.summary
        except (ValidationError, IndexError) as exc:
            raise OracleUnavailable(f"Malformed directions response: {exc}") from exc

        return RouteEstimate(
            distance_km=round(summary.distance / 1000.0, 2),
            duration_minutes=round(summary.duration / 60.0),
        )

    async def geocode(self, place: str) -> Location:
        params = {
            "q": place,
            "format": "json",
            "limit": 1,
            "countrycodes": self.country_code,
        }
        payload = await self._get_json(
            self.geocode_url, params, {"User-Agent": self.user_agent}
        )

        try:
            hits = [GeocodeHit.model_validate(item) for item in payload]
        except (ValidationError, TypeError) as exc:
            raise OracleUnavailable(f"Malformed geocoding response: {exc}") from exc
        if not hits:
            raise OracleUnavailable(f"No geocoding result for {place!r}")

        hit = hits[0]
        if not self.region.contains(hit.lat, hit.lon):
            raise OracleUnavailable(f"{place!r} resolved outside the service region")
        return Location(hit.lat, hit.lon)

    async def _get_json(self, url: str, params: dict, headers: dict):
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise OracleUnavailable(f"Request timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise OracleUnavailable(
                f"Oracle returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise OracleUnavailable(f"Oracle request failed: {exc}") from exc
