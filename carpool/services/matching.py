"""
Matching Service
================

Wires the proximity ``MatchingEngine`` to persistence:

1. Load the pending request and every WAITING ride with a free seat
   (seats recomputed from live passenger records).
2. Let the engine pick the highest-scoring ride.
3. Record a ``Match``, bind the request to the ride and notify the driver.
4. With auto-accept on, admit the request through the ledger right away.
   A ``CapacityExceeded`` there propagates; the request stays PENDING and
   bound to the ride so the driver can retry or reject it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.entities import Location
from carpool.domain.enums import (
    MatchStatus,
    NotificationType,
    RequestStatus,
    RideStatus,
)
from carpool.domain.errors import InvalidState, NoMatchFound, NotFound
from carpool.domain.matching import MatchingEngine, Place, RideCandidate
from carpool.infrastructure.gateways import NotificationMessage
from carpool.infrastructure.models import (
    MatchModel,
    RideModel,
    RidePassengerModel,
    RideRequestModel,
    utcnow,
)
from carpool.infrastructure.repositories import (
    MatchRepository,
    PassengerRepository,
    RideRepository,
    RideRequestRepository,
)
from carpool.services.rides import RideService

logger = logging.getLogger(__name__)


@dataclass
class MatchOutcome:
    match: MatchModel
    passenger: Optional[RidePassengerModel] = None


def _place(name: Optional[str], lat: Optional[float], lng: Optional[float]) -> Place:
    location = Location(lat, lng) if lat is not None and lng is not None else None
    return Place(name=name, location=location)


class MatchingService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: MatchingEngine,
        rides: RideService,
        dispatcher,
        auto_accept: bool = True,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.rides = rides
        self.dispatcher = dispatcher
        self.auto_accept = auto_accept

    async def match_request(self, request_id: int) -> MatchOutcome:
        """Find the best WAITING ride for a pending request.

        Raises ``NoMatchFound`` when no ride satisfies both radius predicates.
        """
        async with self.session_factory() as session:
            request = await RideRequestRepository(session).get_by_id(request_id)
            if request is None:
                raise NotFound("Request", request_id)
            if request.status != RequestStatus.PENDING:
                raise InvalidState(f"Request {request_id} is not PENDING")
            candidates = await self._candidates(session)

        logger.info(
            "Matching request %d against %d candidate rides", request_id, len(candidates)
        )
        result = await self.engine.select(
            _place(request.pickup_location, request.pickup_lat, request.pickup_lng),
            _place(request.drop_location, request.drop_lat, request.drop_lng),
            candidates,
        )

        async with self.session_factory() as session, session.begin():
            match = MatchModel(
                ride_request_id=request_id,
                ride_id=result.ride_id,
                driver_id=result.driver_id,
                score=result.score,
                status=MatchStatus.MATCHED,
                matched_at=utcnow(),
            )
            await MatchRepository(session).create(match)
            bound = await RideRequestRepository(session).get_for_update(request_id)
            if bound is not None and bound.status == RequestStatus.PENDING:
                bound.matched_ride_id = result.ride_id

        logger.info(
            "Request %d matched to ride %d (score %.1f)",
            request_id, result.ride_id, result.score,
        )
        self.dispatcher.submit(
            NotificationMessage(
                user_id=result.driver_id,
                message=(
                    f"New ride request from {request.rider_name or 'a rider'}: "
                    f"{request.pickup_location} -> {request.drop_location}"
                ),
                type=NotificationType.MATCH_FOUND,
            )
        )

        outcome = MatchOutcome(match)
        if self.auto_accept:
            outcome.passenger = await self.rides.accept_request(request_id, result.ride_id)
            async with self.session_factory() as session, session.begin():
                accepted = await MatchRepository(session).get_by_id(match.id)
                accepted.status = MatchStatus.ACCEPTED
            match.status = MatchStatus.ACCEPTED
        return outcome

    async def submit_and_match(
        self, **fields
    ) -> tuple[RideRequestModel, Optional[MatchOutcome]]:
        """Store a request; if it is not bound to a ride, try to match it.

        A request that finds no ride is kept PENDING for a later attempt.
        """
        request = await self.rides.submit_request(**fields)
        if request.matched_ride_id is not None:
            return request, None
        try:
            outcome = await self.match_request(request.id)
        except NoMatchFound:
            logger.info("No ride found yet for request %d", request.id)
            return request, None
        return await self.rides.get_request(request.id), outcome

    async def matches_for_request(self, request_id: int) -> list[MatchModel]:
        async with self.session_factory() as session:
            return await MatchRepository(session).get_for_request(request_id)

    async def _candidates(self, session: AsyncSession) -> list[RideCandidate]:
        passengers = PassengerRepository(session)
        candidates = []
        for ride in await RideRepository(session).get_by_status(RideStatus.WAITING):
            active = await passengers.count_active(ride.id)
            candidates.append(self._candidate(ride, ride.total_seats - active))
        return candidates

    @staticmethod
    def _candidate(ride: RideModel, seats: int) -> RideCandidate:
        return RideCandidate(
            ride_id=ride.id,
            driver_id=ride.driver_id,
            pickup=_place(ride.pickup_location, ride.pickup_lat, ride.pickup_lng),
            drop=_place(ride.drop_location, ride.drop_lat, ride.drop_lng),
            available_seats=seats,
        )
