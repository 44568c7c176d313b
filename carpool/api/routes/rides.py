"""
Ride endpoints
==============

POST  /api/v1/rides                       -- publish a route (201)
GET   /api/v1/rides/available             -- open rides with a free seat
GET   /api/v1/rides/driver/{driver_id}    -- a driver's rides, newest first
GET   /api/v1/rides/{ride_id}             -- ride with segments, passengers, live seats
PATCH /api/v1/rides/{ride_id}/status      -- start / complete / cancel
GET   /api/v1/rides/{ride_id}/passengers  -- passengers on the ride
GET   /api/v1/rides/{ride_id}/requests    -- pending requests bound to the ride
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_ride_service
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    PassengerResponse,
    RideCreateRequest,
    RideDetailResponse,
    RideRequestResponse,
    RideResponse,
    RideStatusUpdate,
)
from carpool.config import settings
from carpool.domain.entities import Location, Stop
from carpool.services.rides import RideDetails, RideService

router = APIRouter(prefix="/rides", tags=["rides"])


def _ride_out(details: RideDetails) -> RideResponse:
    """Report live seat availability rather than the stored counter."""
    return RideResponse.model_validate(details.ride).model_copy(
        update={"available_seats": details.seats_available}
    )


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Publish a ride",
    description=(
        "Splits the route into one segment per consecutive stop pair.  If the "
        "driver already has an open ride with passengers, that ride is "
        "returned; an empty one is cancelled and replaced."
    ),
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    service: RideService = Depends(get_ride_service),
):
    ride = await service.create_ride(
        driver_id=body.driver_id,
        driver_name=body.driver_name,
        stops=[Stop(s.name, Location(s.latitude, s.longitude)) for s in body.stops],
        total_seats=body.total_seats,
        route=body.route,
    )
    return ride


@router.get(
    "/available",
    response_model=list[RideResponse],
    summary="List open rides with free seats",
)
@limiter.limit(settings.rate_limit)
async def available_rides(
    request: Request,
    service: RideService = Depends(get_ride_service),
):
    return [_ride_out(d) for d in await service.list_open_rides()]


@router.get(
    "/driver/{driver_id}",
    response_model=list[RideResponse],
    summary="List a driver's rides",
)
@limiter.limit(settings.rate_limit)
async def driver_rides(
    request: Request,
    driver_id: int,
    service: RideService = Depends(get_ride_service),
):
    return [_ride_out(d) for d in await service.rides_for_driver(driver_id)]


@router.get(
    "/{ride_id}",
    response_model=RideDetailResponse,
    summary="Get a ride with its segments and passengers",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    service: RideService = Depends(get_ride_service),
):
    details = await service.get_ride(ride_id)
    return RideDetailResponse.model_validate(details.ride).model_copy(
        update={
            "available_seats": details.seats_available,
            "passengers": [
                PassengerResponse.model_validate(p) for p in details.passengers
            ],
        }
    )


@router.patch(
    "/{ride_id}/status",
    response_model=RideResponse,
    summary="Change ride status",
    description=(
        "WAITING -> IN_PROGRESS -> COMPLETED, or CANCELLED from either open "
        "state.  Completing drops every boarded passenger and triggers their "
        "payments; cancelling frees all reserved seats."
    ),
)
@limiter.limit(settings.rate_limit)
async def update_status(
    request: Request,
    ride_id: int,
    body: RideStatusUpdate,
    service: RideService = Depends(get_ride_service),
):
    await service.set_ride_status(ride_id, body.status)
    return _ride_out(await service.get_ride(ride_id))


@router.get(
    "/{ride_id}/passengers",
    response_model=list[PassengerResponse],
    summary="List passengers on a ride",
)
@limiter.limit(settings.rate_limit)
async def ride_passengers(
    request: Request,
    ride_id: int,
    service: RideService = Depends(get_ride_service),
):
    return (await service.get_ride(ride_id)).passengers


@router.get(
    "/{ride_id}/requests",
    response_model=list[RideRequestResponse],
    summary="List pending requests bound to a ride",
)
@limiter.limit(settings.rate_limit)
async def ride_pending_requests(
    request: Request,
    ride_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.pending_requests_for_ride(ride_id)
