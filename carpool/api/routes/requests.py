"""
Ride request endpoints
======================

POST /api/v1/requests                       -- submit (202); matched when unbound
GET  /api/v1/requests/rider/{rider_id}      -- a rider's requests, newest first
POST /api/v1/requests/{request_id}/accept   -- admit onto a ride
POST /api/v1/requests/{request_id}/reject   -- reject a pending request
POST /api/v1/requests/{request_id}/match    -- re-run matching
GET  /api/v1/requests/{request_id}          -- one request
GET  /api/v1/requests/{request_id}/matches  -- matches found for it
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_matching_service, get_ride_service
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    AcceptRequest,
    MatchOutcomeResponse,
    MatchResponse,
    PassengerResponse,
    RequestSubmitResponse,
    RideRequestCreate,
    RideRequestResponse,
)
from carpool.config import settings
from carpool.domain.entities import Location
from carpool.services.matching import MatchingService
from carpool.services.rides import RideService

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post(
    "",
    status_code=202,
    response_model=RequestSubmitResponse,
    summary="Submit a ride request",
    responses={202: {"description": "Stored; matched and admitted if a ride fits."}},
)
@limiter.limit(settings.rate_limit)
async def submit_request(
    request: Request,
    body: RideRequestCreate,
    matching: MatchingService = Depends(get_matching_service),
):
    pickup = drop = None
    if body.pickup_lat is not None:
        pickup = Location(body.pickup_lat, body.pickup_lng)
    if body.drop_lat is not None:
        drop = Location(body.drop_lat, body.drop_lng)

    stored, outcome = await matching.submit_and_match(
        rider_id=body.rider_id,
        rider_name=body.rider_name,
        pickup_location=body.pickup_location,
        drop_location=body.drop_location,
        pickup=pickup,
        drop=drop,
        matched_ride_id=body.ride_id,
        distance_km=body.distance_km,
        fare=body.fare,
    )
    return RequestSubmitResponse(
        request=RideRequestResponse.model_validate(stored),
        match=MatchResponse.model_validate(outcome.match) if outcome else None,
        passenger=(
            PassengerResponse.model_validate(outcome.passenger)
            if outcome and outcome.passenger
            else None
        ),
    )


@router.get(
    "/rider/{rider_id}",
    response_model=list[RideRequestResponse],
    summary="List a rider's requests",
)
@limiter.limit(settings.rate_limit)
async def rider_requests(
    request: Request,
    rider_id: int,
    pending_only: bool = False,
    service: RideService = Depends(get_ride_service),
):
    return await service.requests_for_rider(rider_id, pending_only=pending_only)


@router.post(
    "/{request_id}/accept",
    response_model=PassengerResponse,
    summary="Accept a request onto a ride",
    description=(
        "Resolves the rider's segment range and reserves a seat on every "
        "segment in it, or none at all (409 when any is full)."
    ),
)
@limiter.limit(settings.rate_limit)
async def accept_request(
    request: Request,
    request_id: int,
    body: Optional[AcceptRequest] = None,
    service: RideService = Depends(get_ride_service),
):
    ride_id = body.ride_id if body else None
    return await service.accept_request(request_id, ride_id)


@router.post(
    "/{request_id}/reject",
    response_model=RideRequestResponse,
    summary="Reject a pending request",
)
@limiter.limit(settings.rate_limit)
async def reject_request(
    request: Request,
    request_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.reject_request(request_id)


@router.post(
    "/{request_id}/match",
    response_model=MatchOutcomeResponse,
    summary="Find the best ride for a pending request",
)
@limiter.limit(settings.rate_limit)
async def match_request(
    request: Request,
    request_id: int,
    matching: MatchingService = Depends(get_matching_service),
):
    outcome = await matching.match_request(request_id)
    return MatchOutcomeResponse(
        match=MatchResponse.model_validate(outcome.match),
        passenger=(
            PassengerResponse.model_validate(outcome.passenger)
            if outcome.passenger
            else None
        ),
    )


@router.get(
    "/{request_id}",
    response_model=RideRequestResponse,
    summary="Get a ride request",
)
@limiter.limit(settings.rate_limit)
async def get_request(
    request: Request,
    request_id: int,
    service: RideService = Depends(get_ride_service),
):
    return await service.get_request(request_id)


@router.get(
    "/{request_id}/matches",
    response_model=list[MatchResponse],
    summary="List the matches found for a request",
)
@limiter.limit(settings.rate_limit)
async def request_matches(
    request: Request,
    request_id: int,
    matching: MatchingService = Depends(get_matching_service),
    service: RideService = Depends(get_ride_service),
):
    await service.get_request(request_id)
    return [
        MatchResponse.model_validate(m)
        for m in await matching.matches_for_request(request_id)
    ]
