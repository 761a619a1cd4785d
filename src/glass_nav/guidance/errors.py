# errors.py
# Failure taxonomy of the navigation core.
# These never escape NavigationManager's public methods; they are caught at the
# operation boundary and turned into a (bool, message) result plus a display message.

from enum import Enum
from typing import Optional


class NavigationError(Exception):
    """Base class. `user_message` is what the glasses show / say."""

    user_message = "Navigation error. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class LocationErrorKind(Enum):
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT           = "timeout"
    UNAVAILABLE       = "unavailable"


_LOCATION_MESSAGES = {
    LocationErrorKind.PERMISSION_DENIED:
        "Location permission denied. Please allow location access for navigation.",
    LocationErrorKind.TIMEOUT:
        "Timed out waiting for a GPS fix. Please try again in an open area.",
    LocationErrorKind.UNAVAILABLE:
        "Unable to get current location. Please check GPS settings.",
}


class LocationUnavailable(NavigationError):
    """The location source could not produce a fix."""

    def __init__(self, kind: LocationErrorKind = LocationErrorKind.UNAVAILABLE) -> None:
        self.kind = kind
        super().__init__(_LOCATION_MESSAGES[kind])

    @classmethod
    def from_exception(cls, exc: BaseException) -> "LocationUnavailable":
        """Classify an arbitrary location-source failure."""
        if isinstance(exc, LocationUnavailable):
            return exc
        if isinstance(exc, PermissionError):
            return cls(LocationErrorKind.PERMISSION_DENIED)
        if isinstance(exc, TimeoutError):
            return cls(LocationErrorKind.TIMEOUT)
        return cls(LocationErrorKind.UNAVAILABLE)


class DestinationNotFound(NavigationError):
    """Geocoding returned no candidates."""

    def __init__(self, query: str) -> None:
        self.query = query
        super().__init__(f'Unable to find location "{query}". Please try a more specific address.')


class RouteUnavailable(NavigationError):
    """The route provider returned nothing or failed."""

    user_message = "Unable to calculate route. Please try a different destination."


class RecalculationFailed(NavigationError):
    """An off-route or waypoint recalculation failed; the stale route stays active."""

    user_message = "Unable to recalculate route"
