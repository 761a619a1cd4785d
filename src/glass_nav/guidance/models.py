# models.py
# Shared data structures and enums used across all modules.

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable geographic coordinate."""
    lat: float
    lon: float
    accuracy: Optional[float] = None       # metres
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}

    @staticmethod
    def from_dict(d: dict) -> "Coord":
        return Coord(d["lat"], d["lon"])


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RouteStep:
    """A single provider step: one maneuver and the stretch leading to it."""
    distance_m: float
    duration_s: float
    instructions: str
    start_location: Coord
    end_location: Coord
    maneuver: Optional[str] = None
    street_name: Optional[str] = None
    modifier: Optional[str] = None         # "left" | "right" | "straight" | "slight left" ...
    exits: Optional[str] = None
    reference: Optional[str] = None
    destinations: Optional[str] = None
    travel_mode: str = "walking"

    def to_dict(self) -> dict:
        return {
            "distance_m": self.distance_m,
            "duration_s": self.duration_s,
            "instructions": self.instructions,
            "start_location": self.start_location.to_dict(),
            "end_location": self.end_location.to_dict(),
            "maneuver": self.maneuver,
            "street_name": self.street_name,
            "modifier": self.modifier,
            "exits": self.exits,
            "reference": self.reference,
            "destinations": self.destinations,
            "travel_mode": self.travel_mode,
        }

    @staticmethod
    def from_dict(d: dict) -> "RouteStep":
        return RouteStep(
            distance_m=d["distance_m"],
            duration_s=d["duration_s"],
            instructions=d["instructions"],
            start_location=Coord.from_dict(d["start_location"]),
            end_location=Coord.from_dict(d["end_location"]),
            maneuver=d.get("maneuver"),
            street_name=d.get("street_name"),
            modifier=d.get("modifier"),
            exits=d.get("exits"),
            reference=d.get("reference"),
            destinations=d.get("destinations"),
            travel_mode=d.get("travel_mode", "walking"),
        )


@dataclass(frozen=True)
class RouteLeg:
    """Part of a route between two consecutive stops (origin, waypoints, destination)."""
    distance_m: float
    duration_s: float
    start_location: Coord
    end_location: Coord
    steps: Tuple[RouteStep, ...]
    start_address: str = ""
    end_address: str = ""


@dataclass(frozen=True)
class Route:
    """A computed route. Never modified; recalculation produces a new one."""
    route_id: str
    start: Coord
    end: Coord
    legs: Tuple[RouteLeg, ...]
    waypoints: Tuple[Coord, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def distance_m(self) -> float:
        return sum(leg.distance_m for leg in self.legs)

    @property
    def duration_s(self) -> float:
        return sum(leg.duration_s for leg in self.legs)

    @property
    def steps(self) -> List[RouteStep]:
        return [step for leg in self.legs for step in leg.steps]

    def polyline(self) -> List[Coord]:
        """Ordered shape points: route start, every step end, route end."""
        points = [self.start]
        for step in self.steps:
            if step.start_location != points[-1]:
                points.append(step.start_location)
            points.append(step.end_location)
        if points[-1] != self.end:
            points.append(self.end)
        return points

    def to_dict(self) -> dict:
        return {
            "route_id": self.route_id,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "waypoints": [w.to_dict() for w in self.waypoints],
            "distance_m": self.distance_m,
            "duration_s": self.duration_s,
            "warnings": list(self.warnings),
            "legs": [
                {
                    "distance_m": leg.distance_m,
                    "duration_s": leg.duration_s,
                    "start_location": leg.start_location.to_dict(),
                    "end_location": leg.end_location.to_dict(),
                    "start_address": leg.start_address,
                    "end_address": leg.end_address,
                    "steps": [s.to_dict() for s in leg.steps],
                }
                for leg in self.legs
            ],
        }

    @staticmethod
    def from_dict(d: dict) -> "Route":
        return Route(
            route_id=d["route_id"],
            start=Coord.from_dict(d["start"]),
            end=Coord.from_dict(d["end"]),
            waypoints=tuple(Coord.from_dict(w) for w in d.get("waypoints", [])),
            warnings=tuple(d.get("warnings", [])),
            legs=tuple(
                RouteLeg(
                    distance_m=leg["distance_m"],
                    duration_s=leg["duration_s"],
                    start_location=Coord.from_dict(leg["start_location"]),
                    end_location=Coord.from_dict(leg["end_location"]),
                    start_address=leg.get("start_address", ""),
                    end_address=leg.get("end_address", ""),
                    steps=tuple(RouteStep.from_dict(s) for s in leg["steps"]),
                )
                for leg in d["legs"]
            ),
        )


@dataclass(frozen=True)
class RouteRequest:
    """Everything a route provider needs to compute a route."""
    origin: Coord
    destination: Coord
    waypoints: Tuple[Coord, ...] = ()
    mode: str = "walking"
    avoid: Tuple[str, ...] = ()
    units: str = "metric"
    language: str = "en"


# ---------------------------------------------------------------------------
# Instruction
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Instruction:
    """User-facing cue derived from one route step (or the final arrival)."""
    instruction_id: str
    distance_m: float                     # length of the stretch leading to the maneuver
    text: str
    location: Coord                       # where the maneuver happens
    maneuver: Optional[str] = None
    street_name: Optional[str] = None
    modifier: Optional[str] = None
    exit_number: Optional[str] = None
    direction: Optional[str] = None       # "left" | "right" | "straight" | "u-turn" | "slight-left" ...
    is_destination: bool = False

    def to_dict(self) -> dict:
        return {
            "instruction_id": self.instruction_id,
            "distance_m": self.distance_m,
            "text": self.text,
            "location": self.location.to_dict(),
            "maneuver": self.maneuver,
            "street_name": self.street_name,
            "is_destination": self.is_destination,
        }


# ---------------------------------------------------------------------------
# Location feed
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocationUpdate:
    """One fix delivered by the location source."""
    location: Coord
    timestamp: datetime
    speed: Optional[float] = None         # m/s
    heading: Optional[float] = None       # degrees


# ---------------------------------------------------------------------------
# Scene context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SceneContext:
    """Short description of the surroundings plus the sign-detection result."""
    description: str
    detected: bool = False
    confidence: float = 0.0
    details: str = ""


# ---------------------------------------------------------------------------
# Navigation state
# ---------------------------------------------------------------------------

class NavPhase(Enum):
    IDLE        = "idle"
    ROUTING     = "routing"
    NAVIGATING  = "navigating"
    STOPPED     = "stopped"


@dataclass
class NavigationState:
    """The single mutable aggregate owned by NavigationManager."""
    is_navigating: bool = False
    session_locked: bool = False
    current_route: Optional[Route] = None
    current_location: Optional[Coord] = None
    current_speed: Optional[float] = 0.0
    is_off_route: bool = False
    route_progress: float = 0.0
    current_step_index: int = 0
    total_steps: int = 0
    current_instruction: Optional[Instruction] = None
    next_instruction: Optional[Instruction] = None
    distance_to_destination: Optional[float] = None
    time_to_destination: Optional[float] = None
    distance_to_next_turn: Optional[float] = None
    last_update: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Progress result
# ---------------------------------------------------------------------------

class RouteStatus(Enum):
    INACTIVE              = "inactive"
    PROGRESSING           = "progressing"
    INSTRUCTION_ADVANCED  = "instruction_advanced"
    OFF_ROUTE             = "off_route"
    FINISHED              = "finished"


@dataclass
class ProgressResult:
    """Returned by NavigationManager.on_location_update() every GPS update."""
    status: RouteStatus
    message: str
    distance_to_next: Optional[float] = None   # metres
    current_instruction: Optional[Instruction] = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class NavigationEventType(Enum):
    NAVIGATION_STARTED    = "navigation_started"
    NAVIGATION_CANCELLED  = "navigation_cancelled"
    SESSION_RESTARTED     = "session_restarted"
    ROUTE_RECALCULATED    = "route_recalculated"
    OFF_ROUTE_DETECTED    = "off_route_detected"
    DESTINATION_REACHED   = "destination_reached"
    INSTRUCTION_UPDATED   = "instruction_updated"


@dataclass(frozen=True)
class NavigationEvent:
    type: NavigationEventType
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)
