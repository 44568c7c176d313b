"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` gives every
session its own connection, which the concurrent-admission tests rely on.
Distances come from ``StubOracle``: straight-line by default, with explicit
per-pair overrides and an on/off switch to simulate an outage.
"""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carpool.domain.distance import HaversineOracle, RouteEstimate
from carpool.domain.entities import Location, Stop
from carpool.domain.errors import OracleUnavailable
from carpool.domain.pricing import FareCalculator
from carpool.infrastructure.database import Base
from carpool.infrastructure.locks import InProcessLocks
from carpool.infrastructure import models  # noqa: F401  (registers tables)
from carpool.services.rides import RideService


# ── Route used across tests (due north, ~11.12 km per hop) ─────────────

PUNE = Stop("Pune Station", Location(18.50, 73.80))
WAKAD = Stop("Wakad", Location(18.60, 73.80))
LONAVALA = Stop("Lonavala", Location(18.70, 73.80))
KHOPOLI = Stop("Khopoli", Location(18.80, 73.80))
ROUTE = [PUNE, WAKAD, LONAVALA, KHOPOLI]

HOP_KM = 11.12


class StubOracle(HaversineOracle):
    """Haversine oracle with per-pair overrides and a kill switch."""

    def __init__(self, distances: Optional[dict] = None):
        super().__init__(avg_speed_kmh=30.0)
        self.available = True
        self.distances = dict(distances or {})
        self.places: dict[str, Location] = {}
        self.calls = 0

    async def route(self, origin: Location, destination: Location) -> RouteEstimate:
        self.calls += 1
        if not self.available:
            raise OracleUnavailable("oracle offline")
        for key in ((origin, destination), (destination, origin)):
            if key in self.distances:
                km = self.distances[key]
                if km is None:
                    raise OracleUnavailable("no route")
                return RouteEstimate(km, round(km * 2))
        return await super().route(origin, destination)

    async def geocode(self, place: str) -> Location:
        if not self.available or place not in self.places:
            raise OracleUnavailable(f"cannot geocode {place!r}")
        return self.places[place]


class RecordingDispatcher:
    """Captures submitted side-effect jobs instead of delivering them."""

    def __init__(self):
        self.jobs = []

    def submit(self, job) -> None:
        self.jobs.append(job)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a throwaway SQLite file, yield a session factory."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'carpool.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def ride_service(session_factory, oracle, dispatcher) -> RideService:
    return RideService(
        session_factory,
        oracle,
        InProcessLocks(),
        dispatcher,
        FareCalculator(base_fare=30.0, rate_per_km=10.0, fallback_fare=50.0),
    )


async def book(
    service: RideService,
    rider_id: int,
    pickup: Stop,
    drop: Stop,
    ride_id: Optional[int] = None,
):
    """Submit a request between two stops and accept it onto *ride_id*."""
    request = await service.submit_request(
        rider_id=rider_id,
        rider_name=f"Rider {rider_id}",
        pickup_location=pickup.name,
        drop_location=drop.name,
        pickup=pickup.location,
        drop=drop.location,
    )
    return await service.accept_request(request.id, ride_id)
