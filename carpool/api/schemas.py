"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from carpool.domain.enums import (
    MatchStatus,
    PassengerStatus,
    RequestStatus,
    RideStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class StopIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RideCreateRequest(BaseModel):
    driver_id: int
    driver_name: Optional[str] = Field(None, max_length=120)
    stops: list[StopIn] = Field(
        ...,
        min_length=2,
        description="Ordered stops: origin, intermediate points, destination.",
    )
    total_seats: int = Field(..., ge=1, le=8)
    route: Optional[str] = Field(None, max_length=1024)


class RideStatusUpdate(BaseModel):
    status: RideStatus


class RideRequestCreate(BaseModel):
    rider_id: int
    rider_name: Optional[str] = Field(None, max_length=120)
    pickup_location: str = Field(..., min_length=1, max_length=255)
    drop_location: str = Field(..., min_length=1, max_length=255)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    drop_lat: Optional[float] = Field(None, ge=-90, le=90)
    drop_lng: Optional[float] = Field(None, ge=-180, le=180)
    ride_id: Optional[int] = Field(
        None, description="Book this ride directly instead of running matching."
    )
    distance_km: Optional[float] = Field(None, ge=0)
    fare: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def _coordinates_in_pairs(self):
        for prefix in ("pickup", "drop"):
            lat = getattr(self, f"{prefix}_lat")
            lng = getattr(self, f"{prefix}_lng")
            if (lat is None) != (lng is None):
                raise ValueError(f"{prefix}_lat and {prefix}_lng go together")
        return self


class AcceptRequest(BaseModel):
    ride_id: Optional[int] = None


# ── Responses ─────────────────────────────────────────────────────────


class SegmentResponse(BaseModel):
    sequence_order: int
    start_location: str
    end_location: str
    distance_km: float
    rate_per_km: float
    total_seats: int
    occupied_seats: int

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    driver_id: int
    driver_name: Optional[str] = None
    pickup_location: str
    drop_location: str
    route: Optional[str] = None
    status: RideStatus
    total_seats: int
    available_seats: int
    distance_km: Optional[float] = None
    estimated_duration_minutes: Optional[int] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    segments: list[SegmentResponse] = []

    model_config = {"from_attributes": True}


class RideRequestResponse(BaseModel):
    id: int
    rider_id: int
    rider_name: Optional[str] = None
    pickup_location: str
    drop_location: str
    status: RequestStatus
    matched_ride_id: Optional[int] = None
    distance_km: Optional[float] = None
    fare: Optional[float] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PassengerResponse(BaseModel):
    id: int
    ride_id: int
    request_id: Optional[int] = None
    rider_id: int
    rider_name: Optional[str] = None
    boarding_location: Optional[str] = None
    drop_location: Optional[str] = None
    status: PassengerStatus
    start_segment: int
    end_segment: int
    distance_km: Optional[float] = None
    fare_amount: Optional[float] = None
    joined_at: Optional[datetime] = None
    boarded_at: Optional[datetime] = None
    dropped_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideDetailResponse(RideResponse):
    passengers: list[PassengerResponse] = []


class MatchResponse(BaseModel):
    id: int
    ride_request_id: int
    ride_id: int
    driver_id: int
    score: float
    status: MatchStatus
    matched_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RequestSubmitResponse(BaseModel):
    request: RideRequestResponse
    match: Optional[MatchResponse] = None
    passenger: Optional[PassengerResponse] = None


class MatchOutcomeResponse(BaseModel):
    match: MatchResponse
    passenger: Optional[PassengerResponse] = None


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
