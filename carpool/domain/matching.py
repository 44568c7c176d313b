"""
Proximity Matching Algorithm
============================

1. **Spatial pre-filter** -- H3 hexagons at resolution 7.  A ride is only
   considered when its pickup/drop cells fall inside the grid disk that
   covers ``radius_km`` around the rider's points.  Straight-line distance
   is a lower bound of road distance, so the disk is conservative: it never
   hides a ride the radius predicate would accept.
2. **Radius predicates** -- road distance (oracle) rider pickup <-> ride
   pickup and rider drop <-> ride drop must both be ``<= radius_km``.  If the
   oracle cannot answer for a pair, the predicate degrades to exact equality
   of the normalised place names.
3. **Scoring** -- ``clamp(100 - 10 x (pickup_km + drop_km), 0, 100)``; a
   neutral score is used when either distance was unavailable.
4. **Selection** -- strictly highest score wins; ties keep the first seen.

Selection is advisory: capacity is enforced later by the ledger.

Complexity
----------
For C candidate rides: O(C) oracle calls (two per ride surviving the
pre-filter) plus one O(k^2) grid-disk build per request side.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import h3

from .distance import DistanceOracle
from .entities import Location
from .errors import NoMatchFound, OracleUnavailable

logger = logging.getLogger(__name__)


def ride_h3_cell(lat: float, lng: float, resolution: int = 7) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def search_ring_count(radius_km: float, resolution: int = 7) -> int:
    """Grid-disk size ``k`` guaranteed to cover ``radius_km`` around a point.

    Each ring adds at least ``1.5 x edge`` of inradius; the edge is shrunk
    to absorb H3 cell-size distortion, and two edges are added for the
    offset of the point inside its own cell and the target cell.
    """
    edge = h3.average_hexagon_edge_length(resolution, unit="km") / 1.5
    return math.ceil((radius_km + 2 * edge) / (1.5 * edge)) + 1


_SEPARATORS = re.compile(r"[,\s]+")
_PHASE = re.compile(r"phase\d+")


def normalize_location(name: str, noise_tokens: Iterable[str] = ()) -> str:
    """Lower-case, strip separators, ``phaseN`` and region words."""
    out = _PHASE.sub("", _SEPARATORS.sub("", name.lower()))
    for token in noise_tokens:
        out = out.replace(token.lower(), "")
    return out


def match_score(pickup_km: float, drop_km: float) -> float:
    return max(0.0, min(100.0, 100.0 - 10.0 * (pickup_km + drop_km)))


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Place:
    name: Optional[str] = None
    location: Optional[Location] = None


@dataclass(frozen=True)
class RideCandidate:
    ride_id: int
    driver_id: int
    pickup: Place
    drop: Place
    available_seats: int


@dataclass(frozen=True)
class MatchResult:
    ride_id: int
    driver_id: int
    score: float
    pickup_km: Optional[float]
    drop_km: Optional[float]


# ── Engine ────────────────────────────────────────────────────────────


class MatchingEngine:
    def __init__(
        self,
        oracle: DistanceOracle,
        radius_km: float = 15.0,
        neutral_score: float = 50.0,
        h3_resolution: int = 7,
        noise_tokens: Sequence[str] = (),
    ):
        self.oracle = oracle
        self.radius_km = radius_km
        self.neutral_score = neutral_score
        self.h3_resolution = h3_resolution
        self.noise_tokens = tuple(noise_tokens)
        self._rings = search_ring_count(radius_km, h3_resolution)

    async def select(
        self, pickup: Place, drop: Place, candidates: Sequence[RideCandidate]
    ) -> MatchResult:
        """Return the best candidate or raise ``NoMatchFound``."""
        pickup_area = self._search_area(pickup)
        drop_area = self._search_area(drop)

        best: Optional[MatchResult] = None
        for cand in candidates:
            if cand.available_seats <= 0:
                continue
            if not (
                self._in_area(pickup_area, cand.pickup)
                and self._in_area(drop_area, cand.drop)
            ):
                logger.debug("Ride %s outside search area", cand.ride_id)
                continue

            result = await self.evaluate(pickup, drop, cand)
            if result is None:
                continue
            logger.info("Ride %s matches with score %.1f", cand.ride_id, result.score)
            if best is None or result.score > best.score:
                best = result

        if best is None:
            raise NoMatchFound("No suitable rides found within acceptable distance")
        return best

    async def evaluate(
        self, pickup: Place, drop: Place, cand: RideCandidate
    ) -> Optional[MatchResult]:
        """Score one ride; ``None`` if either predicate fails."""
        pickup_km = await self.place_distance(pickup, cand.pickup)
        if not self._within(pickup_km, pickup, cand.pickup):
            return None

        drop_km = await self.place_distance(drop, cand.drop)
        if not self._within(drop_km, drop, cand.drop):
            return None

        if pickup_km is None or drop_km is None:
            score = self.neutral_score
        else:
            score = match_score(pickup_km, drop_km)
        return MatchResult(cand.ride_id, cand.driver_id, score, pickup_km, drop_km)

    async def place_distance(self, a: Place, b: Place) -> Optional[float]:
        """Road distance between two places, ``None`` if unavailable."""
        try:
            loc_a = a.location or await self._geocode(a)
            loc_b = b.location or await self._geocode(b)
            return await self.oracle.distance_km(loc_a, loc_b)
        except OracleUnavailable as exc:
            logger.warning("Distance %s -> %s unavailable: %s", a.name, b.name, exc)
            return None

    # ── helpers ──────────────────────────────────────────────────────

    async def _geocode(self, place: Place) -> Location:
        if not place.name:
            raise OracleUnavailable("Place has neither coordinates nor a name")
        return await self.oracle.geocode(place.name)

    def _within(self, km: Optional[float], a: Place, b: Place) -> bool:
        if km is not None:
            return km <= self.radius_km
        if not a.name or not b.name:
            return False
        return normalize_location(a.name, self.noise_tokens) == normalize_location(
            b.name, self.noise_tokens
        )

    def _search_area(self, place: Place) -> Optional[set[str]]:
        if place.location is None:
            return None
        origin = ride_h3_cell(
            place.location.latitude, place.location.longitude, self.h3_resolution
        )
        return set(h3.grid_disk(origin, self._rings))

    def _in_area(self, area: Optional[set[str]], place: Place) -> bool:
        if area is None or place.location is None:
            return True
        cell = ride_h3_cell(
            place.location.latitude, place.location.longitude, self.h3_resolution
        )
        return cell in area
