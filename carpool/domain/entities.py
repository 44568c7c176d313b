"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** via ``transition``: enforces valid lifecycle transitions
  for rides (WAITING -> IN_PROGRESS -> COMPLETED | CANCELLED) and passengers
  (MATCHED -> BOARDED -> DROPPED | CANCELLED).
- ``Segment`` carries the per-leg seat counters the ledger mutates.  ORM rows
  expose the same attribute names, so ledger functions accept either.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidState


class InvalidStateTransition(InvalidState):
    """Raised when a status change violates the state machine."""


def transition(
    current: enum.Enum,
    new_status: enum.Enum,
    table: dict,
    what: str = "entity",
) -> enum.Enum:
    """Return *new_status* if moving there from *current* is legal, else raise."""
    allowed = table.get(current, set())
    if new_status not in allowed:
        raise InvalidStateTransition(
            f"Cannot transition {what} from {current.value} to {new_status.value}"
        )
    return new_status


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Stop:
    name: str
    location: Location


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Segment:
    sequence_order: int
    start_location: str
    start_lat: float
    start_lng: float
    end_location: str
    end_lat: float
    end_lng: float
    distance_km: float
    rate_per_km: float
    total_seats: int
    occupied_seats: int = 0
    id: Optional[int] = None

    @property
    def start(self) -> Location:
        return Location(self.start_lat, self.start_lng)

    @property
    def end(self) -> Location:
        return Location(self.end_lat, self.end_lng)

    @property
    def free_seats(self) -> int:
        return self.total_seats - self.occupied_seats
