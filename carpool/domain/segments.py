"""
Route Segmenter and Segment Range Resolver
==========================================

Segmenter
---------
A ride's stop list ``[origin, intermediates..., destination]`` becomes one
``Segment`` per consecutive pair, indexed ``0..n``.  Each segment carries the
ride capacity and a uniform per-km rate.  Distances come from the oracle; an
unavailable oracle substitutes a fixed fallback distance instead of failing
ride creation.

Resolver
--------
Nearest-point heuristic, not a graph search:

* ``start`` = segment whose *start point* is nearest the rider's pickup
* ``end``   = segment whose *end point* is nearest the rider's drop

Both minimised independently, ties broken by the lowest index.  The result
may be unusable (empty ride, ``start > end`` for a rider travelling against
the stop order); ``effective_range`` applies the whole-ride fallback policy.

Complexity: O(S) oracle calls for S segments in both directions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .distance import DistanceOracle
from .entities import Location, Segment, Stop
from .errors import OracleUnavailable

logger = logging.getLogger(__name__)


@dataclass
class SegmentPlan:
    segments: list[Segment] = field(default_factory=list)
    distance_km: float = 0.0
    duration_minutes: int = 0


async def build_segments(
    stops: Sequence[Stop],
    capacity: int,
    rate_per_km: float,
    oracle: DistanceOracle,
    fallback_km: float = 10.0,
    fallback_duration_minutes: int = 60,
) -> SegmentPlan:
    """Split an ordered stop list into contiguous segments."""
    if len(stops) < 2:
        raise ValueError("A route needs at least an origin and a destination")

    plan = SegmentPlan()
    for i, (frm, to) in enumerate(zip(stops, stops[1:])):
        try:
            km = await oracle.distance_km(frm.location, to.location)
        except OracleUnavailable as exc:
            logger.warning(
                "Distance unavailable for %s -> %s (%s); using %.1f km",
                frm.name, to.name, exc, fallback_km,
            )
            km = fallback_km

        plan.segments.append(
            Segment(
                sequence_order=i,
                start_location=frm.name,
                start_lat=frm.location.latitude,
                start_lng=frm.location.longitude,
                end_location=to.name,
                end_lat=to.location.latitude,
                end_lng=to.location.longitude,
                distance_km=km,
                rate_per_km=rate_per_km,
                total_seats=capacity,
                occupied_seats=0,
            )
        )
        plan.distance_km += km

    try:
        plan.duration_minutes = await oracle.duration_minutes(
            stops[0].location, stops[-1].location
        )
    except OracleUnavailable:
        plan.duration_minutes = fallback_duration_minutes

    return plan


async def resolve_segment_range(
    segments: Sequence,
    pickup: Location,
    drop: Location,
    oracle: DistanceOracle,
) -> Optional[tuple[int, int]]:
    """Map a rider's pickup/drop onto ``(start, end)`` segment indices.

    Returns ``None`` when no segment could be resolved for either end.
    The pair is returned as found, even if ``start > end``.
    """
    start = end = -1
    best_start = best_end = float("inf")

    for i, seg in enumerate(segments):
        try:
            d_start = await oracle.distance_km(
                pickup, Location(seg.start_lat, seg.start_lng)
            )
            if d_start < best_start:
                best_start, start = d_start, i
        except OracleUnavailable:
            logger.warning("Pickup distance to segment %d unavailable", i)

        try:
            d_end = await oracle.distance_km(drop, Location(seg.end_lat, seg.end_lng))
            if d_end < best_end:
                best_end, end = d_end, i
        except OracleUnavailable:
            logger.warning("Drop distance to segment %d unavailable", i)

    if start < 0 or end < 0:
        return None
    return start, end


def effective_range(
    segments: Sequence, resolved: Optional[tuple[int, int]]
) -> tuple[int, int]:
    """Apply the whole-ride fallback to an unusable resolver result."""
    if resolved is not None and resolved[0] <= resolved[1]:
        return resolved
    if resolved is not None:
        logger.warning(
            "Inverted segment range %d..%d; treating as whole ride", *resolved
        )
    return 0, max(len(segments) - 1, 0)


def span_distance_km(segments: Sequence, start: int, end: int) -> float:
    return sum(seg.distance_km for seg in segments[start:end + 1])
