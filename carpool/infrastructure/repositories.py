"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Methods suffixed ``_for_update`` issue
``SELECT ... FOR UPDATE`` and must run inside a transaction.
"""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    MatchModel,
    RideModel,
    RidePassengerModel,
    RideRequestModel,
    RouteSegmentModel,
)
from carpool.domain.enums import (
    ACTIVE_PASSENGER_STATUSES,
    OPEN_RIDE_STATUSES,
    PassengerStatus,
    RequestStatus,
    RideStatus,
)


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock_segments(self, ride_id: int) -> list[RouteSegmentModel]:
        """Lock and return a ride's segment rows in sequence order."""
        result = await self.session.execute(
            select(RouteSegmentModel)
            .where(RouteSegmentModel.ride_id == ride_id)
            .order_by(RouteSegmentModel.sequence_order)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_open_for_driver(self, driver_id: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.driver_id == driver_id,
                RideModel.status.in_(OPEN_RIDE_STATUSES),
            )
            .order_by(RideModel.created_at)
        )
        return list(result.scalars().all())

    async def get_by_driver(self, driver_id: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == driver_id)
            .order_by(RideModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_by_status(self, *statuses: RideStatus) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status.in_(statuses))
            .order_by(RideModel.created_at)
        )
        return list(result.scalars().all())

    async def delete_all(self) -> None:
        for model in (
            MatchModel,
            RidePassengerModel,
            RideRequestModel,
            RouteSegmentModel,
            RideModel,
        ):
            await self.session.execute(delete(model))


class RideRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, request: RideRequestModel) -> RideRequestModel:
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_by_id(self, request_id: int) -> Optional[RideRequestModel]:
        return await self.session.get(RideRequestModel, request_id)

    async def get_for_update(self, request_id: int) -> Optional[RideRequestModel]:
        result = await self.session.execute(
            select(RideRequestModel)
            .where(RideRequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_rider(self, rider_id: int) -> list[RideRequestModel]:
        result = await self.session.execute(
            select(RideRequestModel)
            .where(RideRequestModel.rider_id == rider_id)
            .order_by(RideRequestModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_pending_for_ride(self, ride_id: int) -> list[RideRequestModel]:
        result = await self.session.execute(
            select(RideRequestModel)
            .where(
                RideRequestModel.matched_ride_id == ride_id,
                RideRequestModel.status == RequestStatus.PENDING,
            )
            .order_by(RideRequestModel.created_at)
        )
        return list(result.scalars().all())


class PassengerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, passenger: RidePassengerModel) -> RidePassengerModel:
        self.session.add(passenger)
        await self.session.flush()
        return passenger

    async def get_by_id(self, passenger_id: int) -> Optional[RidePassengerModel]:
        return await self.session.get(RidePassengerModel, passenger_id)

    async def get_for_update(self, passenger_id: int) -> Optional[RidePassengerModel]:
        result = await self.session.execute(
            select(RidePassengerModel)
            .where(RidePassengerModel.id == passenger_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_ride(
        self, ride_id: int, statuses: Sequence[PassengerStatus] = ()
    ) -> list[RidePassengerModel]:
        query = select(RidePassengerModel).where(RidePassengerModel.ride_id == ride_id)
        if statuses:
            query = query.where(RidePassengerModel.status.in_(statuses))
        result = await self.session.execute(query.order_by(RidePassengerModel.id))
        return list(result.scalars().all())

    async def get_by_rider(self, rider_id: int) -> list[RidePassengerModel]:
        result = await self.session.execute(
            select(RidePassengerModel)
            .where(RidePassengerModel.rider_id == rider_id)
            .order_by(RidePassengerModel.joined_at.desc())
        )
        return list(result.scalars().all())

    async def count_active(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RidePassengerModel)
            .where(
                RidePassengerModel.ride_id == ride_id,
                RidePassengerModel.status.in_(ACTIVE_PASSENGER_STATUSES),
            )
        )
        return result.scalar() or 0

    async def count_not_cancelled(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RidePassengerModel)
            .where(
                RidePassengerModel.ride_id == ride_id,
                RidePassengerModel.status != PassengerStatus.CANCELLED,
            )
        )
        return result.scalar() or 0


class MatchRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, match: MatchModel) -> MatchModel:
        self.session.add(match)
        await self.session.flush()
        return match

    async def get_by_id(self, match_id: int) -> Optional[MatchModel]:
        return await self.session.get(MatchModel, match_id)

    async def get_for_request(self, request_id: int) -> list[MatchModel]:
        result = await self.session.execute(
            select(MatchModel)
            .where(MatchModel.ride_request_id == request_id)
            .order_by(MatchModel.matched_at)
        )
        return list(result.scalars().all())
