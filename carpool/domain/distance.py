"""
Distance Oracle abstraction.

Every component asks a ``DistanceOracle`` for road distance, duration and
geocoding.  Implementations raise ``OracleUnavailable`` instead of guessing;
callers decide their own fallback policy.

``HaversineOracle`` uses great-circle distance and a fixed average speed so
the engine runs locally without external API keys.  The road-network client
lives in ``carpool.infrastructure.routing``.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .entities import Location
from .errors import OracleUnavailable

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


@dataclass(frozen=True)
class RouteEstimate:
    distance_km: float
    duration_minutes: int


class DistanceOracle(ABC):
    @abstractmethod
    async def route(self, origin: Location, destination: Location) -> RouteEstimate:
        """Road distance and travel time between two points."""

    @abstractmethod
    async def geocode(self, place: str) -> Location:
        """Coordinates for a place name inside the service region."""

    async def distance_km(self, origin: Location, destination: Location) -> float:
        return (await self.route(origin, destination)).distance_km

    async def duration_minutes(self, origin: Location, destination: Location) -> int:
        return (await self.route(origin, destination)).duration_minutes


class HaversineOracle(DistanceOracle):
    """Straight-line oracle; has no geocoder."""

    def __init__(self, avg_speed_kmh: float = 30.0):
        self.avg_speed_kmh = avg_speed_kmh

    async def route(self, origin: Location, destination: Location) -> RouteEstimate:
        km = haversine_km(
            origin.latitude, origin.longitude,
            destination.latitude, destination.longitude,
        )
        minutes = round(km / self.avg_speed_kmh * 60) if self.avg_speed_kmh > 0 else 0
        return RouteEstimate(distance_km=round(km, 2), duration_minutes=minutes)

    async def geocode(self, place: str) -> Location:
        raise OracleUnavailable(f"No geocoder configured for {place!r}")
