"""
Fare Calculator  (Strategy Pattern)
===================================

Two formulas, computed at different points of a passenger's life:

Preliminary (at acceptance)
---------------------------
Fare = sum over [start, end] of Segment_Distance x Segment_Rate_Per_KM

Falls back to a fixed fare when the ride has no segments or the sum is 0.

Final (at drop)
---------------
Fare = Base_Fare + Rate_Per_KM x Passenger_Distance, rounded to 2 decimals

The final fare uses the rider's point-to-point distance, not the per-segment
rates, so the two values can differ for the same trip.  Both are kept.

Complexity: O(k) for k segments in range, O(1) for the final fare.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: float) -> float: ...


class StandardPricing(PricingStrategy):
    def __init__(self, base_fare: float, rate_per_km: float):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km

    def calculate(self, distance_km: float) -> float:
        return round(self.base_fare + distance_km * self.rate_per_km, 2)


class SegmentRatePricing:
    """Sums each occupied segment's distance at that segment's own rate."""

    def calculate(self, segments: Sequence, start: int, end: int) -> float:
        if not segments or start < 0 or end >= len(segments) or start > end:
            return 0.0
        return sum(
            seg.distance_km * seg.rate_per_km for seg in segments[start:end + 1]
        )


# ── Engine facade ─────────────────────────────────────────────────────


class FareCalculator:
    """High-level API used by the ride lifecycle service."""

    def __init__(
        self,
        base_fare: float = 30.0,
        rate_per_km: float = 10.0,
        fallback_fare: float = 50.0,
    ):
        self.fallback_fare = fallback_fare
        self._final = StandardPricing(base_fare, rate_per_km)
        self._preliminary = SegmentRatePricing()

    def preliminary_fare(self, segments: Sequence, start: int, end: int) -> float:
        total = self._preliminary.calculate(segments, start, end)
        if total == 0:
            return self.fallback_fare
        return round(total, 2)

    def final_fare(self, distance_km: float) -> float:
        return self._final.calculate(distance_km)
