"""
Passenger endpoints
===================

POST /api/v1/passengers/{passenger_id}/board  -- MATCHED -> BOARDED
POST /api/v1/passengers/{passenger_id}/drop   -- BOARDED -> DROPPED, final fare
GET  /api/v1/passengers/rider/{rider_id}      -- a rider's trip history
GET  /api/v1/passengers/{passenger_id}        -- one passenger
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_ride_service
from carpool.api.middleware import limiter
from carpool.api.schemas import PassengerResponse
from carpool.config import settings
from carpool.services.rides import RideService

router = APIRouter(prefix="/passengers", tags=["passengers"])


@router.post(
    "/{passenger_id}/board",
    response_model=PassengerResponse,
    summary="Board a matched passenger",
)
@limiter.limit(settings.rate_limit)
async def board(
    request: Request,
    passenger_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.board(passenger_id)


@router.post(
    "/{passenger_id}/drop",
    response_model=PassengerResponse,
    summary="Drop a boarded passenger",
    description="Frees the passenger's seats and settles the final fare; payment is asynchronous.",
)
@limiter.limit(settings.rate_limit)
async def drop(
    request: Request,
    passenger_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.drop(passenger_id)


@router.get(
    "/rider/{rider_id}",
    response_model=list[PassengerResponse],
    summary="A rider's trip history",
)
@limiter.limit(settings.rate_limit)
async def rider_history(
    request: Request,
    rider_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.passengers_for_rider(rider_id)


@router.get(
    "/{passenger_id}",
    response_model=PassengerResponse,
    summary="Get a passenger",
)
@limiter.limit(settings.rate_limit)
async def get_passenger(
    request: Request,
    passenger_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.get_passenger(passenger_id)
