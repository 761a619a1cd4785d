# providers.py
# Contracts for the collaborators around the navigation core, plus small
# offline implementations used by the simulator and tests.

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol

from .errors import LocationErrorKind, LocationUnavailable
from .geo_utils import bearing, distance, get_turn_instruction, parse_coord
from .models import Coord, LocationUpdate, Route, RouteLeg, RouteRequest, RouteStep, SceneContext
from .nav_config import AVERAGE_SPEED_MS, DEFAULT_SPEED_MS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------

class RouteProvider(Protocol):
    def calculate_route(self, request: RouteRequest) -> Optional[Route]:
        """Return a route, or None when no route exists. May raise on transport errors."""


class Geocoder(Protocol):
    def geocode(self, query: str) -> List[Coord]:
        """Candidate coordinates, best first. Empty list means not found."""


class SceneContextProvider(Protocol):
    def describe(self, location: Coord) -> Optional[SceneContext]:
        """Describe the surroundings. May be slow, return None, or raise."""


class LocationSource(Protocol):
    def get_latest_location(self, accuracy: str) -> Coord:
        """One fresh fix. Raises on failure (PermissionError, TimeoutError, ...)."""

    def subscribe(self, accuracy: str, callback: Callable[[LocationUpdate], None]) -> Callable[[], None]:
        """Stream fixes into `callback`; returns the unsubscribe function."""


class DisplaySink(Protocol):
    def show_text(self, text: str, duration_s: Optional[float] = None) -> None:
        """Replace whatever is on the glasses with `text`."""


class VoiceSink(Protocol):
    def speak(self, text: str) -> None:
        ...


# ---------------------------------------------------------------------------
# Offline implementations
# ---------------------------------------------------------------------------

def _compass_word(bearing_deg: float) -> str:
    names = ["north", "northeast", "east", "southeast", "south", "southwest", "west", "northwest"]
    return names[int(((bearing_deg % 360) + 22.5) // 45) % 8]


class DirectRouteProvider:
    """
    Straight-line route through the requested waypoints.

    One leg per stop-to-stop segment, one step per leg. Each step's maneuver
    is the turn at its end, derived from the bearing change to the next leg.

    Args:
        street_name: Optional name reported for every step.
    """

    def __init__(self, street_name: Optional[str] = None) -> None:
        self.street_name = street_name

    def calculate_route(self, request: RouteRequest) -> Optional[Route]:
        stops = [request.origin, *request.waypoints, request.destination]
        speed_ms = AVERAGE_SPEED_MS.get(request.mode, DEFAULT_SPEED_MS)

        total = sum(distance(a, b) for a, b in zip(stops, stops[1:]))
        if total < 1.0:
            logger.warning("Origin and destination are the same point.")
            return None

        legs: List[RouteLeg] = []
        for i, (a, b) in enumerate(zip(stops, stops[1:])):
            d = distance(a, b)
            if i + 2 < len(stops):
                b1 = bearing(a, b)
                b2 = bearing(b, stops[i + 2])
                text = get_turn_instruction(b2 - b1)
                maneuver = None
            else:
                text = f"Continue {_compass_word(bearing(a, b))} to your destination"
                maneuver = "continue"

            step = RouteStep(
                distance_m=d,
                duration_s=d / speed_ms,
                instructions=text,
                start_location=a,
                end_location=b,
                maneuver=maneuver,
                street_name=self.street_name,
                travel_mode=request.mode,
            )
            legs.append(RouteLeg(
                distance_m=d,
                duration_s=d / speed_ms,
                start_location=a,
                end_location=b,
                steps=(step,),
            ))

        return Route(
            route_id=uuid.uuid4().hex[:12],
            start=request.origin,
            end=request.destination,
            legs=tuple(legs),
            waypoints=tuple(request.waypoints),
        )


class StaticGeocoder:
    """Resolves 'lat,lon' strings and a fixed table of named places."""

    def __init__(self, places: Optional[Dict[str, Coord]] = None) -> None:
        self.places = {k.lower(): v for k, v in (places or {}).items()}

    def geocode(self, query: str) -> List[Coord]:
        parsed = parse_coord(query)
        if parsed:
            return [parsed]

        key = query.strip().lower()
        if key in self.places:
            return [self.places[key]]
        return [coord for name, coord in self.places.items() if key and key in name]


class CoordinateSceneProvider:
    """Coordinate-only description, for when no imagery service is configured."""

    def describe(self, location: Coord) -> SceneContext:
        return SceneContext(
            description=f"Location: {location.lat:.4f}, {location.lon:.4f}",
            detected=False,
            confidence=0.0,
            details="No image available",
        )


class SimulatedLocationSource:
    """
    Replayable GPS feed.

    Call push() with each new position; every active subscriber receives it.
    """

    def __init__(self, initial: Optional[Coord] = None) -> None:
        self._lock = threading.Lock()
        self._latest = initial
        self._subscribers: Dict[int, Callable[[LocationUpdate], None]] = {}
        self._next_id = 0
        self.failure: Optional[Exception] = None   # raised by get_latest_location when set

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def get_latest_location(self, accuracy: str) -> Coord:
        if self.failure is not None:
            raise self.failure
        with self._lock:
            if self._latest is None:
                raise LocationUnavailable(LocationErrorKind.UNAVAILABLE)
            return self._latest

    def subscribe(self, accuracy: str, callback: Callable[[LocationUpdate], None]) -> Callable[[], None]:
        with self._lock:
            sub_id = self._next_id
            self._next_id += 1
            self._subscribers[sub_id] = callback
        logger.debug(f"Location subscriber {sub_id} added ({accuracy}).")

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(sub_id, None)

        return unsubscribe

    def push(self, location: Coord, speed: Optional[float] = None, heading: Optional[float] = None) -> None:
        update = LocationUpdate(location=location, timestamp=datetime.now(), speed=speed, heading=heading)
        with self._lock:
            self._latest = location
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            callback(update)


class ConsoleDisplay:
    """Prints display frames to stdout."""

    def __init__(self) -> None:
        self.last_text: Optional[str] = None

    def show_text(self, text: str, duration_s: Optional[float] = None) -> None:
        self.last_text = text
        print(f"[Display]\n{text}\n")
