# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects, no imports from other project modules except models.

import math
from typing import Optional, Sequence

import numpy as np

from .models import Coord


EARTH_RADIUS_M = 6_371_000.0
FEET_PER_METER = 3.28084
FEET_PER_MILE = 5280.0
MPH_PER_MS = 2.237
KMH_PER_MS = 3.6


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points in metres.

    Args:
        lat1, lon1: Origin in decimal degrees.
        lat2, lon2: Destination in decimal degrees.

    Returns:
        Distance in metres.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Forward azimuth (bearing) from point 1 to point 2 in degrees [0, 360).

    Args:
        lat1, lon1: Origin in decimal degrees.
        lat2, lon2: Destination in decimal degrees.

    Returns:
        Bearing in degrees.
    """
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)
    d_lon = rlon2 - rlon1
    y = math.sin(d_lon) * math.cos(rlat2)
    x = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def distance(a: Coord, b: Coord) -> float:
    """Haversine distance between two coordinates in metres."""
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def bearing(a: Coord, b: Coord) -> float:
    """Bearing from a to b in degrees [0, 360)."""
    return calculate_bearing(a.lat, a.lon, b.lat, b.lon)


def is_within_radius(a: Coord, b: Coord, radius_m: float) -> bool:
    return distance(a, b) <= radius_m


def get_turn_instruction(bearing_diff: float) -> str:
    """
    Human-readable turn instruction derived from the change in bearing.

    Args:
        bearing_diff: Difference between consecutive bearings in degrees.

    Returns:
        Turn instruction string.
    """
    diff = (bearing_diff + 180) % 360 - 180
    if diff > 135:
        return "Make a U-turn to the right"
    elif diff > 45:
        return "Turn sharp right"
    elif diff > 10:
        return "Turn right"
    elif diff < -135:
        return "Make a U-turn to the left"
    elif diff < -45:
        return "Turn sharp left"
    elif diff < -10:
        return "Turn left"
    return "Go straight"


def directional_arrow(bearing_deg: float) -> str:
    """
    Map a bearing onto one of four glyphs pointing N/E/S/W.

    The compass is split into eight 45° sectors on 22.5° boundaries,
    but only four glyphs exist: NE/E/SE show '>' and SW/W/NW show '<'.
    """
    b = bearing_deg % 360
    if b >= 337.5 or b < 22.5:
        return "^"
    if b < 157.5:
        return ">"
    if b < 202.5:
        return "v"
    return "<"


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_distance(meters: float, units: str = "metric", precision: int = 1) -> str:
    """Format a distance as km/m or mi/ft; switches at 1 km and 0.1 mi."""
    if units == "imperial":
        feet = meters * FEET_PER_METER
        miles = feet / FEET_PER_MILE
        if miles >= 0.1:
            return f"{miles:.{precision}f} mi"
        return f"{round(feet)} ft"

    kilometers = meters / 1000
    if kilometers >= 1:
        return f"{kilometers:.{precision}f} km"
    return f"{round(meters)} m"


def format_speed(meters_per_second: float, units: str = "metric") -> str:
    if units == "imperial":
        return f"{round(meters_per_second * MPH_PER_MS)} mph"
    return f"{round(meters_per_second * KMH_PER_MS)} km/h"


def format_duration(seconds: float, short: bool = False) -> str:
    """Format seconds as '1h 5m' (short) or '1 hour 5 minutes'."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)

    if short:
        return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"

    minute_text = "minute" if minutes == 1 else "minutes"
    if hours > 0:
        hour_text = "hour" if hours == 1 else "hours"
        if minutes > 0:
            return f"{hours} {hour_text} {minutes} {minute_text}"
        return f"{hours} {hour_text}"
    return f"{minutes} {minute_text}"


def coord_to_string(coord: Coord, precision: int = 6) -> str:
    return f"{coord.lat:.{precision}f},{coord.lon:.{precision}f}"


def parse_coord(text: str) -> Optional[Coord]:
    """Parse 'lat,lon'. Returns None for malformed or out-of-range input."""
    parts = text.split(",")
    if len(parts) != 2:
        return None
    try:
        lat = float(parts[0].strip())
        lon = float(parts[1].strip())
    except ValueError:
        return None
    if not is_valid_coordinates(lat, lon):
        return None
    return Coord(lat, lon)


def is_valid_coordinates(lat: float, lon: float) -> bool:
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def midpoint(a: Coord, b: Coord) -> Coord:
    """Great-circle midpoint."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_lon = math.radians(b.lon - a.lon)

    bx = math.cos(phi2) * math.cos(d_lon)
    by = math.cos(phi2) * math.sin(d_lon)
    phi3 = math.atan2(
        math.sin(phi1) + math.sin(phi2),
        math.sqrt((math.cos(phi1) + bx) ** 2 + by ** 2),
    )
    lam3 = math.radians(a.lon) + math.atan2(by, math.cos(phi1) + bx)
    lon = (math.degrees(lam3) + 540) % 360 - 180
    return Coord(math.degrees(phi3), lon)


# ---------------------------------------------------------------------------
# Projection onto route geometry
# ---------------------------------------------------------------------------

def _to_local_xy(origin: Coord, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Equirectangular projection in metres around `origin`."""
    lat0 = math.radians(origin.lat)
    x = np.radians(lons - origin.lon) * math.cos(lat0) * EARTH_RADIUS_M
    y = np.radians(lats - origin.lat) * EARTH_RADIUS_M
    return np.stack([x, y], axis=-1)


def distance_to_polyline(point: Coord, polyline: Sequence[Coord]) -> float:
    """
    Shortest distance in metres from `point` to a polyline.

    Segments are projected in a local metric frame centred on `point`,
    which is accurate for the few-hundred-metre deviations we care about.
    """
    if not polyline:
        return math.inf
    if len(polyline) == 1:
        return distance(point, polyline[0])

    lats = np.array([c.lat for c in polyline], dtype=float)
    lons = np.array([c.lon for c in polyline], dtype=float)
    xy = _to_local_xy(point, lats, lons)

    a = xy[:-1]
    ab = xy[1:] - a
    len_sq = np.einsum("ij,ij->i", ab, ab)
    dot = np.einsum("ij,ij->i", -a, ab)
    t = np.divide(dot, len_sq, out=np.zeros_like(dot), where=len_sq > 0)
    t = np.clip(t, 0.0, 1.0)
    closest = a + ab * t[:, None]
    return float(np.min(np.hypot(closest[:, 0], closest[:, 1])))
