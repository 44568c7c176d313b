"""Error taxonomy shared by the domain, services and API layers."""


class CarpoolError(Exception):
    """Base class for every engine error."""


class CapacityExceeded(CarpoolError):
    """A segment in the requested range has no free seat.

    Admission is all-or-nothing, so nothing was mutated when this is raised.
    """

    def __init__(self, ride_id, segment_index=None):
        self.ride_id = ride_id
        self.segment_index = segment_index
        if segment_index is None:
            msg = f"Ride {ride_id} is full"
        else:
            msg = f"Segment {segment_index} of ride {ride_id} is full"
        super().__init__(msg)


class NotFound(CarpoolError):
    """Unknown ride, request or passenger id."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found: {ident}")


class InvalidState(CarpoolError):
    """Operation not allowed in the entity's current status."""


class NoMatchFound(CarpoolError):
    """No candidate ride satisfied the pickup and drop predicates."""


class OracleUnavailable(CarpoolError):
    """Distance/geocoding provider could not answer. Always recoverable."""
