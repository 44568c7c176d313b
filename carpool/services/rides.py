"""
Ride Lifecycle Service
======================

Orchestrates ride creation, request acceptance/rejection, boarding, dropping
and ride status changes on top of the segmenter, resolver, ledger and fare
calculator.

Concurrency safety
------------------
* **Keyed locks** (``driver:{id}`` -> ``request:{id}`` -> ``ride:{id}``)
  serialise every read-modify-write on the same driver, request or ride.
  The lock is held across the whole DB transaction, so a competing admission
  can only observe committed seat counters.
* **SELECT ... FOR UPDATE** on the ride row and its segment rows inside the
  transaction keeps the check-then-increment atomic even against writers
  that do not share the lock provider.
* Oracle calls (segment distances, range resolution) happen *before* the
  locks are taken: segment geometry never changes after creation, only the
  seat counters do.
* Payment initiation is handed to the dispatcher only after commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain import ledger
from carpool.domain.distance import DistanceOracle
from carpool.domain.entities import Location, Stop, transition
from carpool.domain.enums import (
    ACTIVE_PASSENGER_STATUSES,
    OPEN_RIDE_STATUSES,
    PASSENGER_TRANSITIONS,
    RIDE_TRANSITIONS,
    PassengerStatus,
    RequestStatus,
    RideStatus,
)
from carpool.domain.errors import InvalidState, NotFound, OracleUnavailable
from carpool.domain.matching import ride_h3_cell
from carpool.domain.pricing import FareCalculator
from carpool.domain.segments import (
    build_segments,
    effective_range,
    resolve_segment_range,
    span_distance_km,
)
from carpool.infrastructure.gateways import PaymentInitiation
from carpool.infrastructure.models import (
    RideModel,
    RidePassengerModel,
    RideRequestModel,
    RouteSegmentModel,
    utcnow,
)
from carpool.infrastructure.repositories import (
    PassengerRepository,
    RideRepository,
    RideRequestRepository,
)

logger = logging.getLogger(__name__)


def _point(lat: Optional[float], lng: Optional[float]) -> Optional[Location]:
    if lat is None or lng is None:
        return None
    return Location(lat, lng)


@dataclass
class RideDetails:
    ride: RideModel
    seats_available: int
    passengers: list[RidePassengerModel] = field(default_factory=list)


@dataclass
class _Admission:
    ride_id: int
    start: int
    end: int
    distance_km: float


class RideService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        oracle: DistanceOracle,
        locks,
        dispatcher,
        fares: FareCalculator,
        segment_rate_per_km: float = 10.0,
        fallback_segment_km: float = 10.0,
        fallback_duration_minutes: int = 60,
        payment_method: str = "UPI",
        h3_resolution: int = 7,
    ):
        self.session_factory = session_factory
        self.oracle = oracle
        self.locks = locks
        self.dispatcher = dispatcher
        self.fares = fares
        self.segment_rate_per_km = segment_rate_per_km
        self.fallback_segment_km = fallback_segment_km
        self.fallback_duration_minutes = fallback_duration_minutes
        self.payment_method = payment_method
        self.h3_resolution = h3_resolution

    # ── Rides ────────────────────────────────────────────────────────

    async def create_ride(
        self,
        *,
        driver_id: int,
        stops: Sequence[Stop],
        total_seats: int,
        driver_name: Optional[str] = None,
        route: Optional[str] = None,
    ) -> RideModel:
        """Publish a route.  At most one open ride per driver.

        An open ride that never had a passenger is cancelled and replaced;
        one with passengers is returned unchanged.
        """
        async with self.locks.lock(f"driver:{driver_id}"):
            async with self.session_factory() as session:
                existing = await self._ride_with_passengers(session, driver_id)
            if existing is not None:
                logger.info(
                    "Driver %d has active ride %d with passengers; returning it",
                    driver_id, existing.id,
                )
                return existing

            plan = await build_segments(
                stops,
                total_seats,
                self.segment_rate_per_km,
                self.oracle,
                fallback_km=self.fallback_segment_km,
                fallback_duration_minutes=self.fallback_duration_minutes,
            )

            async with self.session_factory() as session, session.begin():
                repo = RideRepository(session)
                passengers = PassengerRepository(session)
                stale_rides = [
                    await repo.get_for_update(r.id)
                    for r in await repo.get_open_for_driver(driver_id)
                ]
                # Decide before touching anything: one occupied ride wins.
                for stale in stale_rides:
                    if await passengers.count_not_cancelled(stale.id):
                        return stale
                for stale in stale_rides:
                    logger.info("Auto-cancelling empty stale ride %d", stale.id)
                    stale.status = RideStatus.CANCELLED

                origin, destination = stops[0], stops[-1]
                ride = RideModel(
                    driver_id=driver_id,
                    driver_name=driver_name,
                    pickup_location=origin.name,
                    drop_location=destination.name,
                    route=route,
                    pickup_lat=origin.location.latitude,
                    pickup_lng=origin.location.longitude,
                    drop_lat=destination.location.latitude,
                    drop_lng=destination.location.longitude,
                    h3_cell=ride_h3_cell(
                        origin.location.latitude,
                        origin.location.longitude,
                        self.h3_resolution,
                    ),
                    total_seats=total_seats,
                    available_seats=total_seats,
                    status=RideStatus.WAITING,
                    distance_km=round(plan.distance_km, 2),
                    estimated_duration_minutes=plan.duration_minutes,
                    created_at=utcnow(),
                    segments=[
                        RouteSegmentModel(
                            sequence_order=seg.sequence_order,
                            start_location=seg.start_location,
                            start_lat=seg.start_lat,
                            start_lng=seg.start_lng,
                            end_location=seg.end_location,
                            end_lat=seg.end_lat,
                            end_lng=seg.end_lng,
                            distance_km=seg.distance_km,
                            rate_per_km=seg.rate_per_km,
                            total_seats=seg.total_seats,
                            occupied_seats=0,
                        )
                        for seg in plan.segments
                    ],
                )
                await repo.create(ride)

        logger.info(
            "Ride %d created for driver %d: %d segments, %.2f km",
            ride.id, driver_id, len(ride.segments), ride.distance_km,
        )
        return ride

    async def set_ride_status(self, ride_id: int, status: RideStatus) -> RideModel:
        """Move a ride through its lifecycle.

        COMPLETED force-drops every boarded passenger (release, final fare,
        payment).  CANCELLED cancels matched and boarded passengers and frees
        their seats without charging them.
        """
        payments: list[PaymentInitiation] = []
        async with self.locks.lock(f"ride:{ride_id}"):
            async with self.session_factory() as session, session.begin():
                repo = RideRepository(session)
                ride = await repo.get_for_update(ride_id)
                if ride is None:
                    raise NotFound("Ride", ride_id)

                ride.status = transition(
                    RideStatus(ride.status), status, RIDE_TRANSITIONS, "ride"
                )
                if status == RideStatus.IN_PROGRESS:
                    ride.started_at = utcnow()
                elif status == RideStatus.COMPLETED:
                    segments = await repo.lock_segments(ride_id)
                    boarded = await PassengerRepository(session).get_by_ride(
                        ride_id, (PassengerStatus.BOARDED,)
                    )
                    for passenger in boarded:
                        payments.append(
                            await self._drop_locked(session, ride, segments, passenger)
                        )
                    ride.completed_at = utcnow()
                elif status == RideStatus.CANCELLED:
                    segments = await repo.lock_segments(ride_id)
                    active = await PassengerRepository(session).get_by_ride(
                        ride_id, ACTIVE_PASSENGER_STATUSES
                    )
                    for passenger in active:
                        ledger.release(
                            ride, segments, passenger.start_segment, passenger.end_segment
                        )
                        passenger.status = PassengerStatus.CANCELLED

        for payment in payments:
            self.dispatcher.submit(payment)
        logger.info("Ride %d is now %s", ride_id, status.value)
        return ride

    async def get_ride(self, ride_id: int) -> RideDetails:
        async with self.session_factory() as session:
            ride = await RideRepository(session).get_by_id(ride_id)
            if ride is None:
                raise NotFound("Ride", ride_id)
            passengers = await PassengerRepository(session).get_by_ride(ride_id)
        return RideDetails(ride, self._live_seats(ride, passengers), passengers)

    async def available_seats(self, ride_id: int) -> int:
        """Seats free right now, recomputed from live passenger records."""
        return (await self.get_ride(ride_id)).seats_available

    async def list_open_rides(self, *statuses: RideStatus) -> list[RideDetails]:
        """Open rides with at least one free seat, newest first."""
        statuses = statuses or OPEN_RIDE_STATUSES
        async with self.session_factory() as session:
            repo = PassengerRepository(session)
            result = []
            for ride in await RideRepository(session).get_by_status(*statuses):
                active = await repo.get_by_ride(ride.id, ACTIVE_PASSENGER_STATUSES)
                seats = self._live_seats(ride, active)
                if seats > 0:
                    result.append(RideDetails(ride, seats, active))
        result.sort(key=lambda d: d.ride.created_at, reverse=True)
        return result

    async def rides_for_driver(self, driver_id: int) -> list[RideDetails]:
        async with self.session_factory() as session:
            repo = PassengerRepository(session)
            result = []
            for ride in await RideRepository(session).get_by_driver(driver_id):
                passengers = await repo.get_by_ride(ride.id)
                result.append(
                    RideDetails(ride, self._live_seats(ride, passengers), passengers)
                )
        return result

    async def delete_all(self) -> None:
        """Administrative bulk delete of every ride and its history."""
        async with self.session_factory() as session, session.begin():
            await RideRepository(session).delete_all()
        logger.warning("All rides, requests and passengers deleted")

    # ── Requests ─────────────────────────────────────────────────────

    async def submit_request(
        self,
        *,
        rider_id: int,
        pickup_location: str,
        drop_location: str,
        pickup: Optional[Location] = None,
        drop: Optional[Location] = None,
        rider_name: Optional[str] = None,
        matched_ride_id: Optional[int] = None,
        distance_km: Optional[float] = None,
        fare: Optional[float] = None,
    ) -> RideRequestModel:
        """Store a PENDING request, optionally pre-bound to a ride."""
        async with self.session_factory() as session, session.begin():
            if matched_ride_id is not None:
                if await RideRepository(session).get_by_id(matched_ride_id) is None:
                    raise NotFound("Ride", matched_ride_id)
            request = RideRequestModel(
                rider_id=rider_id,
                rider_name=rider_name,
                pickup_location=pickup_location,
                drop_location=drop_location,
                pickup_lat=pickup.latitude if pickup else None,
                pickup_lng=pickup.longitude if pickup else None,
                drop_lat=drop.latitude if drop else None,
                drop_lng=drop.longitude if drop else None,
                status=RequestStatus.PENDING,
                matched_ride_id=matched_ride_id,
                distance_km=distance_km,
                fare=fare,
                created_at=utcnow(),
            )
            await RideRequestRepository(session).create(request)
        logger.info("Request %d submitted by rider %d", request.id, rider_id)
        return request

    async def get_request(self, request_id: int) -> RideRequestModel:
        async with self.session_factory() as session:
            request = await RideRequestRepository(session).get_by_id(request_id)
        if request is None:
            raise NotFound("Request", request_id)
        return request

    async def requests_for_rider(
        self, rider_id: int, pending_only: bool = False
    ) -> list[RideRequestModel]:
        async with self.session_factory() as session:
            requests = await RideRequestRepository(session).get_by_rider(rider_id)
        if pending_only:
            requests = [r for r in requests if r.status == RequestStatus.PENDING]
        return requests

    async def pending_requests_for_ride(self, ride_id: int) -> list[RideRequestModel]:
        async with self.session_factory() as session:
            if await RideRepository(session).get_by_id(ride_id) is None:
                raise NotFound("Ride", ride_id)
            return await RideRequestRepository(session).get_pending_for_ride(ride_id)

    async def accept_request(
        self, request_id: int, ride_id: Optional[int] = None
    ) -> RidePassengerModel:
        """Admit a pending request onto a ride.

        The explicit *ride_id* wins over the request's pre-bound ride.  On
        ``CapacityExceeded`` the transaction rolls back and no passenger is
        created.
        """
        admission = await self._plan_admission(request_id, ride_id)

        async with self.locks.lock(f"request:{request_id}"), self.locks.lock(
            f"ride:{admission.ride_id}"
        ):
            async with self.session_factory() as session, session.begin():
                request = await RideRequestRepository(session).get_for_update(request_id)
                if request is None:
                    raise NotFound("Request", request_id)
                if request.status != RequestStatus.PENDING:
                    raise InvalidState(f"Request {request_id} is not PENDING")

                repo = RideRepository(session)
                ride = await repo.get_for_update(admission.ride_id)
                if ride is None:
                    raise NotFound("Ride", admission.ride_id)
                if ride.status not in OPEN_RIDE_STATUSES:
                    raise InvalidState(f"Ride {ride.id} is {ride.status.value}")
                segments = await repo.lock_segments(ride.id)

                ledger.admit(ride, segments, admission.start, admission.end)

                passenger = RidePassengerModel(
                    ride_id=ride.id,
                    request_id=request.id,
                    rider_id=request.rider_id,
                    rider_name=request.rider_name,
                    boarding_location=request.pickup_location,
                    boarding_lat=request.pickup_lat,
                    boarding_lng=request.pickup_lng,
                    drop_location=request.drop_location,
                    drop_lat=request.drop_lat,
                    drop_lng=request.drop_lng,
                    status=PassengerStatus.MATCHED,
                    start_segment=admission.start,
                    end_segment=admission.end,
                    distance_km=admission.distance_km,
                    fare_amount=self.fares.preliminary_fare(
                        segments, admission.start, admission.end
                    ),
                    payment_completed=False,
                    joined_at=utcnow(),
                )
                await PassengerRepository(session).create(passenger)

                request.matched_ride_id = ride.id
                request.status = RequestStatus.MATCHED

        logger.info(
            "Request %d admitted to ride %d on segments %d..%d (passenger %d)",
            request_id, admission.ride_id, admission.start, admission.end, passenger.id,
        )
        return passenger

    async def reject_request(self, request_id: int) -> RideRequestModel:
        async with self.locks.lock(f"request:{request_id}"):
            async with self.session_factory() as session, session.begin():
                request = await RideRequestRepository(session).get_for_update(request_id)
                if request is None:
                    raise NotFound("Request", request_id)
                if request.status != RequestStatus.PENDING:
                    raise InvalidState(f"Request {request_id} is not PENDING")
                request.status = RequestStatus.COMPLETED
        logger.info("Request %d rejected", request_id)
        return request

    # ── Passengers ───────────────────────────────────────────────────

    async def board(self, passenger_id: int) -> RidePassengerModel:
        """MATCHED -> BOARDED.  Seats were already reserved at acceptance.

        Serialised with status changes on the ride, so nobody boards a ride
        that has already completed or been cancelled.
        """
        passenger = await self.get_passenger(passenger_id)

        async with self.locks.lock(f"ride:{passenger.ride_id}"):
            async with self.session_factory() as session, session.begin():
                passenger = await PassengerRepository(session).get_for_update(passenger_id)
                ride = await RideRepository(session).get_for_update(passenger.ride_id)
                if ride is None:
                    raise NotFound("Ride", passenger.ride_id)
                if ride.status not in OPEN_RIDE_STATUSES:
                    raise InvalidState(
                        f"Ride {ride.id} is {RideStatus(ride.status).value}; "
                        "boarding is closed"
                    )
                passenger.status = transition(
                    PassengerStatus(passenger.status),
                    PassengerStatus.BOARDED,
                    PASSENGER_TRANSITIONS,
                    "passenger",
                )
                passenger.boarded_at = utcnow()
                await self._set_request_status(session, passenger, RequestStatus.IN_RIDE)
        logger.info("Passenger %d boarded ride %d", passenger_id, passenger.ride_id)
        return passenger

    async def drop(self, passenger_id: int) -> RidePassengerModel:
        """BOARDED -> DROPPED: free the seats, settle the fare, trigger payment."""
        passenger = await self.get_passenger(passenger_id)

        async with self.locks.lock(f"ride:{passenger.ride_id}"):
            async with self.session_factory() as session, session.begin():
                passenger = await PassengerRepository(session).get_for_update(passenger_id)
                repo = RideRepository(session)
                ride = await repo.get_for_update(passenger.ride_id)
                if ride is None:
                    raise NotFound("Ride", passenger.ride_id)
                segments = await repo.lock_segments(ride.id)
                payment = await self._drop_locked(session, ride, segments, passenger)

        self.dispatcher.submit(payment)
        logger.info(
            "Passenger %d dropped from ride %d; final fare %.2f",
            passenger_id, passenger.ride_id, passenger.fare_amount,
        )
        return passenger

    async def get_passenger(self, passenger_id: int) -> RidePassengerModel:
        async with self.session_factory() as session:
            passenger = await PassengerRepository(session).get_by_id(passenger_id)
        if passenger is None:
            raise NotFound("Passenger", passenger_id)
        return passenger

    async def passengers_for_ride(
        self, ride_id: int, statuses: Sequence[PassengerStatus] = ()
    ) -> list[RidePassengerModel]:
        async with self.session_factory() as session:
            return await PassengerRepository(session).get_by_ride(ride_id, statuses)

    async def passengers_for_rider(self, rider_id: int) -> list[RidePassengerModel]:
        async with self.session_factory() as session:
            return await PassengerRepository(session).get_by_rider(rider_id)

    # ── Internals ────────────────────────────────────────────────────

    async def _ride_with_passengers(
        self, session: AsyncSession, driver_id: int
    ) -> Optional[RideModel]:
        passengers = PassengerRepository(session)
        for ride in await RideRepository(session).get_open_for_driver(driver_id):
            if await passengers.count_not_cancelled(ride.id):
                return ride
        return None

    async def _plan_admission(
        self, request_id: int, ride_id: Optional[int]
    ) -> _Admission:
        """Pick the target ride and resolve the segment range, lock-free."""
        async with self.session_factory() as session:
            request = await RideRequestRepository(session).get_by_id(request_id)
            if request is None:
                raise NotFound("Request", request_id)
            if request.status != RequestStatus.PENDING:
                raise InvalidState(f"Request {request_id} is not PENDING")

            rides = RideRepository(session)
            ride = await rides.get_by_id(ride_id) if ride_id is not None else None
            if ride is None and request.matched_ride_id is not None:
                ride = await rides.get_by_id(request.matched_ride_id)
            if ride is None:
                raise NotFound("Ride", ride_id or f"for request {request_id}")
            segments = list(ride.segments)

        pickup = _point(request.pickup_lat, request.pickup_lng)
        drop = _point(request.drop_lat, request.drop_lng)
        resolved = None
        if pickup is not None and drop is not None:
            resolved = await resolve_segment_range(segments, pickup, drop, self.oracle)
        start, end = effective_range(segments, resolved)

        distance = await self._trip_distance(pickup, drop, segments, start, end)
        return _Admission(ride.id, start, end, distance)

    async def _trip_distance(
        self,
        pickup: Optional[Location],
        drop: Optional[Location],
        segments: Sequence,
        start: int,
        end: int,
    ) -> float:
        """Rider's own pickup -> drop distance; occupied span if unavailable."""
        if pickup is not None and drop is not None:
            try:
                return await self.oracle.distance_km(pickup, drop)
            except OracleUnavailable as exc:
                logger.warning("Trip distance unavailable (%s); using segment span", exc)
        return round(span_distance_km(segments, start, end), 2)

    async def _drop_locked(
        self,
        session: AsyncSession,
        ride: RideModel,
        segments: Sequence,
        passenger: RidePassengerModel,
    ) -> PaymentInitiation:
        """Drop one passenger inside an open transaction holding the ride lock."""
        passenger.status = transition(
            PassengerStatus(passenger.status),
            PassengerStatus.DROPPED,
            PASSENGER_TRANSITIONS,
            "passenger",
        )
        ledger.release(ride, segments, passenger.start_segment, passenger.end_segment)

        if not passenger.distance_km:
            passenger.distance_km = await self._trip_distance(
                _point(passenger.boarding_lat, passenger.boarding_lng),
                _point(passenger.drop_lat, passenger.drop_lng),
                segments,
                passenger.start_segment,
                passenger.end_segment,
            )
        passenger.fare_amount = self.fares.final_fare(passenger.distance_km)
        passenger.dropped_at = utcnow()
        await self._set_request_status(session, passenger, RequestStatus.COMPLETED)

        return PaymentInitiation(
            ride_id=ride.id,
            rider_id=passenger.rider_id,
            amount=passenger.fare_amount,
            method=self.payment_method,
        )

    async def _set_request_status(
        self,
        session: AsyncSession,
        passenger: RidePassengerModel,
        status: RequestStatus,
    ) -> None:
        if passenger.request_id is None:
            return
        request = await RideRequestRepository(session).get_by_id(passenger.request_id)
        if request is not None:
            request.status = status

    @staticmethod
    def _live_seats(ride: RideModel, passengers: Sequence[RidePassengerModel]) -> int:
        active = sum(1 for p in passengers if p.status in ACTIVE_PASSENGER_STATUSES)
        return max(0, ride.total_seats - active)
