"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``rides``            -- a driver's published route and seat capacity
* ``route_segments``   -- ordered legs of a ride, each with its own seat counter
* ``ride_requests``    -- a rider's wish to travel pickup -> drop
* ``ride_passengers``  -- an admitted request bound to a segment range
* ``matches``          -- matching-engine recommendations

Indexes
-------
* **B-Tree** on ``status``, ``driver_id``, ``rider_id`` and the foreign keys
  used by the lifecycle service and the API.
* Unique ``(ride_id, sequence_order)`` keeps a ride's segment chain gapless
  and unambiguous.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from carpool.domain.enums import (
    MatchStatus,
    PassengerStatus,
    RequestStatus,
    RideStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, nullable=False)
    driver_name = Column(String(120), nullable=True)

    pickup_location = Column(String(255), nullable=False)
    drop_location = Column(String(255), nullable=False)
    route = Column(String(1024), nullable=True)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    drop_lat = Column(Float, nullable=False)
    drop_lng = Column(Float, nullable=False)
    h3_cell = Column(String(20), nullable=True)

    total_seats = Column(Integer, nullable=False)
    # Whole-ride counter; authoritative only for rides without segments
    available_seats = Column(Integer, nullable=False)
    status = Column(Enum(RideStatus), default=RideStatus.WAITING, nullable=False)

    distance_km = Column(Float, nullable=True)
    estimated_duration_minutes = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    segments = relationship(
        "RouteSegmentModel",
        back_populates="ride",
        order_by="RouteSegmentModel.sequence_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver", "driver_id"),
    )


class RouteSegmentModel(Base):
    __tablename__ = "route_segments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(
        Integer, ForeignKey("rides.id", ondelete="CASCADE"), nullable=False
    )
    sequence_order = Column(Integer, nullable=False)

    start_location = Column(String(255), nullable=False)
    start_lat = Column(Float, nullable=False)
    start_lng = Column(Float, nullable=False)
    end_location = Column(String(255), nullable=False)
    end_lat = Column(Float, nullable=False)
    end_lng = Column(Float, nullable=False)

    distance_km = Column(Float, nullable=False)
    rate_per_km = Column(Float, nullable=False)
    total_seats = Column(Integer, nullable=False)
    occupied_seats = Column(Integer, default=0, nullable=False)

    ride = relationship("RideModel", back_populates="segments")

    __table_args__ = (
        UniqueConstraint("ride_id", "sequence_order", name="uq_segment_order"),
        CheckConstraint(
            "occupied_seats >= 0 AND occupied_seats <= total_seats",
            name="ck_segment_occupancy",
        ),
        Index("idx_segments_ride", "ride_id"),
    )


class RideRequestModel(Base):
    __tablename__ = "ride_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rider_id = Column(Integer, nullable=False)
    rider_name = Column(String(120), nullable=True)

    pickup_location = Column(String(255), nullable=False)
    drop_location = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    drop_lat = Column(Float, nullable=True)
    drop_lng = Column(Float, nullable=True)

    status = Column(
        Enum(RequestStatus), default=RequestStatus.PENDING, nullable=False
    )
    matched_ride_id = Column(Integer, ForeignKey("rides.id"), nullable=True)

    # Advisory values supplied by the rider's client
    distance_km = Column(Float, nullable=True)
    fare = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_requests_status", "status"),
        Index("idx_requests_rider", "rider_id"),
        Index("idx_requests_ride", "matched_ride_id"),
    )


class RidePassengerModel(Base):
    __tablename__ = "ride_passengers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    request_id = Column(Integer, ForeignKey("ride_requests.id"), nullable=True)
    rider_id = Column(Integer, nullable=False)
    rider_name = Column(String(120), nullable=True)

    boarding_location = Column(String(255), nullable=True)
    boarding_lat = Column(Float, nullable=True)
    boarding_lng = Column(Float, nullable=True)
    drop_location = Column(String(255), nullable=True)
    drop_lat = Column(Float, nullable=True)
    drop_lng = Column(Float, nullable=True)

    status = Column(
        Enum(PassengerStatus), default=PassengerStatus.MATCHED, nullable=False
    )
    start_segment = Column(Integer, nullable=False, default=0)
    end_segment = Column(Integer, nullable=False, default=0)

    distance_km = Column(Float, nullable=True)
    fare_amount = Column(Float, nullable=True)
    payment_completed = Column(Boolean, default=False, nullable=False)

    joined_at = Column(DateTime(timezone=True), default=utcnow)
    boarded_at = Column(DateTime(timezone=True), nullable=True)
    dropped_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_passengers_ride_status", "ride_id", "status"),
        Index("idx_passengers_rider", "rider_id"),
    )


class MatchModel(Base):
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_request_id = Column(Integer, ForeignKey("ride_requests.id"), nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    driver_id = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    status = Column(Enum(MatchStatus), default=MatchStatus.MATCHED, nullable=False)
    matched_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_matches_request", "ride_request_id"),
        Index("idx_matches_driver_status", "driver_id", "status"),
    )
