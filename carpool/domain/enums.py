"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    IN_RIDE = "IN_RIDE"
    COMPLETED = "COMPLETED"


class PassengerStatus(str, enum.Enum):
    MATCHED = "MATCHED"
    BOARDED = "BOARDED"
    DROPPED = "DROPPED"
    CANCELLED = "CANCELLED"


class MatchStatus(str, enum.Enum):
    MATCHED = "MATCHED"
    ACCEPTED = "ACCEPTED"


class NotificationType(str, enum.Enum):
    MATCH_FOUND = "MATCH_FOUND"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.WAITING: {
        RideStatus.IN_PROGRESS,
        RideStatus.COMPLETED,
        RideStatus.CANCELLED,
    },
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

PASSENGER_TRANSITIONS: dict[PassengerStatus, set[PassengerStatus]] = {
    PassengerStatus.MATCHED: {PassengerStatus.BOARDED, PassengerStatus.CANCELLED},
    PassengerStatus.BOARDED: {PassengerStatus.DROPPED, PassengerStatus.CANCELLED},
    PassengerStatus.DROPPED: set(),
    PassengerStatus.CANCELLED: set(),
}

# Rides that still accept passengers
OPEN_RIDE_STATUSES = (RideStatus.WAITING, RideStatus.IN_PROGRESS)

# Passengers currently holding a seat
ACTIVE_PASSENGER_STATUSES = (PassengerStatus.MATCHED, PassengerStatus.BOARDED)
