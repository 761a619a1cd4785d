# nav_config.py
# All tuneable constants in one place.
# Pass a NavConfig / NavigationSettings instance to every module that needs settings.

import os
from dataclasses import dataclass, fields, replace
from typing import Dict, List, Optional


# ---------------------------------------------------------------------------
# Preference vocabularies
# ---------------------------------------------------------------------------

ROUTE_TYPES: frozenset = frozenset({'fastest', 'shortest', 'avoid_highways', 'avoid_tolls'})

TRANSPORTATION_MODES: frozenset = frozenset({'driving', 'walking', 'cycling', 'transit'})

DISTANCE_UNITS: frozenset = frozenset({'metric', 'imperial'})

LOCATION_ACCURACIES: frozenset = frozenset({'high', 'balanced', 'low_power'})

# Average travel speed per mode, used for ETA (m/s)
AVERAGE_SPEED_MS: Dict[str, float] = {
    'walking': 1.4,    # 5 km/h
    'cycling': 5.6,    # 20 km/h
    'driving': 13.9,   # 50 km/h
}
DEFAULT_SPEED_MS: float = 13.9

# Voice announcement distances (m) per announcement_frequency setting
ANNOUNCEMENT_THRESHOLDS: Dict[int, List[int]] = {
    1: [500, 100],                                      # minimal
    2: [800, 300, 100],                                 # low
    3: [1000, 500, 200, 50],                            # normal
    4: [1500, 1000, 500, 200, 100, 50],                 # frequent
    5: [2000, 1500, 1000, 500, 300, 200, 100, 50],      # maximum
}

METERS_PER_MILE: float = 1609.34

# Remaining-distance milestones for long-route progress announcements (m)
PROGRESS_MILESTONES_METRIC: List[float] = [100000, 50000, 25000, 10000, 5000, 1000]
PROGRESS_MILESTONES_IMPERIAL: List[float] = [
    50 * METERS_PER_MILE, 25 * METERS_PER_MILE, 10 * METERS_PER_MILE,
    5 * METERS_PER_MILE, METERS_PER_MILE,
]

# Location-source accuracy modes
TRACKING_REALTIME = "realtime"
TRACKING_REDUCED = "reduced"


# ---------------------------------------------------------------------------
# Engine config
# ---------------------------------------------------------------------------

@dataclass
class NavConfig:
    # Arrival / progress tracking
    destination_threshold_m: float = 30.0        # distance to route end that counts as arrival
    instruction_threshold_m: float = 30.0        # distance to a maneuver point that passes it
    route_deviation_threshold_m: float = 50.0    # distance to route polyline → deviation tick
    max_off_route_checks: int = 3                # consecutive deviation ticks before off-route

    # Voice
    announcement_tolerance_m: float = 10.0       # slack when testing a threshold crossing
    progress_tolerance_m: float = 100.0          # window around a progress milestone
    voice_distance_prefix_m: float = 50.0        # "In X m, ..." only above this distance

    # Periodic activities (seconds)
    display_refresh_s: float = 1.0
    scene_refresh_s: float = 20.0
    message_duration_s: float = 5.0              # transient messages while unlocked

    # Logging
    log_dir: Optional[str] = None                # None disables route / event files
    route_filename: str = "active_route.json"
    event_filename: str = "nav_session.jsonl"

    @property
    def route_filepath(self) -> str:
        return os.path.join(self.log_dir or ".", self.route_filename)

    @property
    def event_filepath(self) -> str:
        return os.path.join(self.log_dir or ".", self.event_filename)


# ---------------------------------------------------------------------------
# User preferences
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NavigationSettings:
    route_type: str = 'fastest'
    transportation_mode: str = 'walking'
    voice_guidance: bool = True
    voice_language: str = 'en'
    announcement_frequency: int = 3              # 1-5 scale
    distance_units: str = 'metric'
    show_speed: bool = False
    show_eta: bool = True
    show_distance_remaining: bool = True
    location_accuracy: str = 'high'

    def __post_init__(self) -> None:
        if self.route_type not in ROUTE_TYPES:
            raise ValueError(f"Unknown route_type: {self.route_type!r}")
        if self.transportation_mode not in TRANSPORTATION_MODES:
            raise ValueError(f"Unknown transportation_mode: {self.transportation_mode!r}")
        if self.distance_units not in DISTANCE_UNITS:
            raise ValueError(f"Unknown distance_units: {self.distance_units!r}")
        if self.location_accuracy not in LOCATION_ACCURACIES:
            raise ValueError(f"Unknown location_accuracy: {self.location_accuracy!r}")
        if not 1 <= self.announcement_frequency <= 5:
            raise ValueError("announcement_frequency must be between 1 and 5.")

    def merged(self, **partial) -> "NavigationSettings":
        """Return a copy with `partial` applied; unknown keys are rejected."""
        known = {f.name for f in fields(self)}
        unknown = set(partial) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(self, **partial)

    @property
    def average_speed_ms(self) -> float:
        return AVERAGE_SPEED_MS.get(self.transportation_mode, DEFAULT_SPEED_MS)

    @property
    def avoidance(self) -> List[str]:
        avoid: List[str] = []
        if self.route_type == 'avoid_highways':
            avoid.append('highways')
        if self.route_type == 'avoid_tolls':
            avoid.append('tolls')
        return avoid
