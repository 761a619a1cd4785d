"""Navigation state machine, geo math and instruction formatting."""

from .errors import (
    DestinationNotFound,
    LocationErrorKind,
    LocationUnavailable,
    NavigationError,
    RecalculationFailed,
    RouteUnavailable,
)
from .models import Coord, LocationUpdate, NavigationEventType, Route, RouteRequest, SceneContext
from .nav_config import NavConfig, NavigationSettings
from .navigation_manager import NavigationManager
from .session import NavigationSession, SessionRegistry, SessionServices

__all__ = [
    "Coord",
    "DestinationNotFound",
    "LocationErrorKind",
    "LocationUnavailable",
    "LocationUpdate",
    "NavConfig",
    "NavigationError",
    "NavigationEventType",
    "NavigationManager",
    "NavigationSession",
    "NavigationSettings",
    "RecalculationFailed",
    "Route",
    "RouteRequest",
    "RouteUnavailable",
    "SceneContext",
    "SessionRegistry",
    "SessionServices",
]
