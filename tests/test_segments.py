"""Unit tests for the route segmenter and the segment range resolver."""

import pytest

from carpool.domain.entities import Location, Segment, Stop
from carpool.domain.segments import (
    build_segments,
    effective_range,
    resolve_segment_range,
    span_distance_km,
)
from tests.conftest import HOP_KM, KHOPOLI, LONAVALA, PUNE, ROUTE, WAKAD, StubOracle


class TestBuildSegments:
    @pytest.mark.asyncio
    async def test_one_segment_per_consecutive_pair(self):
        plan = await build_segments(ROUTE, 3, 10.0, StubOracle())

        assert len(plan.segments) == 3
        assert [(s.start_location, s.end_location) for s in plan.segments] == [
            ("Pune Station", "Wakad"),
            ("Wakad", "Lonavala"),
            ("Lonavala", "Khopoli"),
        ]
        assert all(s.total_seats == 3 and s.occupied_seats == 0 for s in plan.segments)
        assert all(s.rate_per_km == 10.0 for s in plan.segments)

    @pytest.mark.asyncio
    async def test_segment_endpoints_chain(self):
        plan = await build_segments(ROUTE, 2, 10.0, StubOracle())
        for prev, nxt in zip(plan.segments, plan.segments[1:]):
            assert prev.end == nxt.start

    @pytest.mark.asyncio
    async def test_distances_come_from_oracle(self):
        oracle = StubOracle({(PUNE.location, WAKAD.location): 14.5})
        plan = await build_segments(ROUTE, 2, 10.0, oracle)

        assert plan.segments[0].distance_km == 14.5
        assert plan.segments[1].distance_km == pytest.approx(HOP_KM)
        assert plan.distance_km == pytest.approx(14.5 + 2 * HOP_KM)

    @pytest.mark.asyncio
    async def test_failed_pair_uses_fallback_only_for_that_pair(self):
        oracle = StubOracle({(WAKAD.location, LONAVALA.location): None})
        plan = await build_segments(ROUTE, 2, 10.0, oracle, fallback_km=7.0)

        assert [s.distance_km for s in plan.segments] == [
            pytest.approx(HOP_KM), 7.0, pytest.approx(HOP_KM),
        ]

    @pytest.mark.asyncio
    async def test_duration_falls_back_when_oracle_down(self):
        oracle = StubOracle()
        oracle.available = False
        plan = await build_segments(ROUTE, 2, 10.0, oracle, fallback_duration_minutes=45)
        assert plan.duration_minutes == 45

    @pytest.mark.asyncio
    async def test_needs_two_stops(self):
        with pytest.raises(ValueError):
            await build_segments([PUNE], 2, 10.0, StubOracle())


class TestResolveSegmentRange:
    def setup_method(self):
        self.segments = [
            Segment(i, a.name, a.location.latitude, a.location.longitude,
                    b.name, b.location.latitude, b.location.longitude,
                    HOP_KM, 10.0, 2)
            for i, (a, b) in enumerate(zip(ROUTE, ROUTE[1:]))
        ]

    @pytest.mark.asyncio
    async def test_middle_leg(self):
        resolved = await resolve_segment_range(
            self.segments, WAKAD.location, LONAVALA.location, StubOracle()
        )
        assert resolved == (1, 1)

    @pytest.mark.asyncio
    async def test_whole_route(self):
        resolved = await resolve_segment_range(
            self.segments, PUNE.location, KHOPOLI.location, StubOracle()
        )
        assert resolved == (0, 2)

    @pytest.mark.asyncio
    async def test_nearby_points_snap_to_nearest_segment(self):
        resolved = await resolve_segment_range(
            self.segments,
            Location(18.51, 73.81),
            Location(18.69, 73.79),
            StubOracle(),
        )
        assert resolved == (0, 1)

    @pytest.mark.asyncio
    async def test_ties_go_to_lowest_index(self):
        oracle = StubOracle()
        pickup = Location(0.0, 0.0)
        drop = Location(1.0, 1.0)
        for s in self.segments:
            oracle.distances[(pickup, s.start)] = 5.0
            oracle.distances[(drop, s.end)] = 5.0
        resolved = await resolve_segment_range(self.segments, pickup, drop, oracle)
        assert resolved == (0, 0)

    @pytest.mark.asyncio
    async def test_reverse_direction_is_returned_inverted(self):
        resolved = await resolve_segment_range(
            self.segments, LONAVALA.location, WAKAD.location, StubOracle()
        )
        assert resolved == (2, 0)

    @pytest.mark.asyncio
    async def test_unavailable_oracle_resolves_nothing(self):
        oracle = StubOracle()
        oracle.available = False
        resolved = await resolve_segment_range(
            self.segments, WAKAD.location, LONAVALA.location, oracle
        )
        assert resolved is None

    @pytest.mark.asyncio
    async def test_unanswered_segment_is_skipped(self):
        oracle = StubOracle({(WAKAD.location, WAKAD.location): None})
        resolved = await resolve_segment_range(
            self.segments, WAKAD.location, LONAVALA.location, oracle
        )
        # segment 1 start is unreachable; equidistant 0 and 2 tie, lowest wins
        assert resolved == (0, 1)

    @pytest.mark.asyncio
    async def test_empty_ride(self):
        resolved = await resolve_segment_range(
            [], WAKAD.location, LONAVALA.location, StubOracle()
        )
        assert resolved is None


class TestEffectiveRange:
    def test_valid_range_kept(self):
        assert effective_range([1, 2, 3], (1, 2)) == (1, 2)

    def test_inverted_range_becomes_whole_ride(self):
        assert effective_range([1, 2, 3], (2, 0)) == (0, 2)

    def test_unresolved_becomes_whole_ride(self):
        assert effective_range([1, 2, 3], None) == (0, 2)

    def test_no_segments(self):
        assert effective_range([], None) == (0, 0)


def test_span_distance():
    segs = [Segment(i, "a", 0, 0, "b", 0, 0, km, 10.0, 2) for i, km in enumerate([3.0, 4.5, 2.0])]
    assert span_distance_km(segs, 1, 2) == 6.5
    assert span_distance_km(segs, 0, 0) == 3.0
