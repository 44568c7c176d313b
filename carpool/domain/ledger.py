"""
Segment Capacity Ledger
=======================

Admission control for a single ride.  Works on any ride object exposing
``id``, ``total_seats`` and ``available_seats`` and on segment objects
exposing ``total_seats`` and ``occupied_seats`` (domain ``Segment`` or the
ORM row).

Contract
--------
* ``admit``   -- every segment in ``[start, end]`` must have
  ``occupied < total`` *before* any of them is touched; then all are
  incremented together.  Otherwise ``CapacityExceeded`` and nothing changes.
* ``release`` -- decrement every segment in range, floored at 0.

The functions themselves contain no ``await``, so a check-and-increment can
never interleave with another coroutine.  Cross-process safety comes from the
caller: a per-ride lock plus ``SELECT ... FOR UPDATE`` on the segment rows
(see ``carpool.services.rides``).

A ride without segments falls back to the ride-wide ``available_seats``
counter with the same contract.
"""

from __future__ import annotations

from typing import Sequence

from .errors import CapacityExceeded


def _check_range(segments: Sequence, start: int, end: int) -> None:
    if not 0 <= start <= end < len(segments):
        raise ValueError(
            f"Segment range {start}..{end} outside 0..{len(segments) - 1}"
        )


def admit(ride, segments: Sequence, start: int, end: int) -> None:
    """Reserve one seat on every segment in ``[start, end]`` or none at all."""
    if not segments:
        if ride.available_seats <= 0:
            raise CapacityExceeded(ride.id)
        ride.available_seats -= 1
        return

    _check_range(segments, start, end)
    required = segments[start:end + 1]
    for offset, seg in enumerate(required):
        if seg.occupied_seats >= seg.total_seats:
            raise CapacityExceeded(ride.id, start + offset)

    for seg in required:
        seg.occupied_seats += 1
    ride.available_seats = available_seats(ride, segments)


def release(ride, segments: Sequence, start: int, end: int) -> None:
    """Give back one seat on every segment in range.  Never goes below 0."""
    if not segments:
        ride.available_seats = min(ride.total_seats, ride.available_seats + 1)
        return

    for seg in segments[max(start, 0):end + 1]:
        seg.occupied_seats = max(0, seg.occupied_seats - 1)
    ride.available_seats = available_seats(ride, segments)


def available_seats(ride, segments: Sequence) -> int:
    """Seats free along the *whole* route: total minus the busiest segment."""
    if not segments:
        return ride.available_seats
    return ride.total_seats - max(seg.occupied_seats for seg in segments)


def range_available(segments: Sequence, start: int, end: int) -> int:
    """Minimum residual capacity a rider spanning ``[start, end]`` would see."""
    _check_range(segments, start, end)
    return min(seg.total_seats - seg.occupied_seats for seg in segments[start:end + 1])
