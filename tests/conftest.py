import math
from datetime import datetime
from typing import List, Optional

import pytest

from glass_nav.guidance.models import Coord, LocationUpdate, RouteRequest, SceneContext
from glass_nav.guidance.nav_config import NavConfig, NavigationSettings
from glass_nav.guidance.navigation_manager import NavigationManager
from glass_nav.guidance.providers import DirectRouteProvider, SimulatedLocationSource, StaticGeocoder
from glass_nav.guidance.scheduler import ManualScheduler

METERS_PER_DEG_LAT = 111_194.93

SF_START = Coord(37.7749, -122.4194)
SF_NORTH = Coord(37.7849, -122.4194)     # ~1.11 km due north


def north_of(origin: Coord, meters: float) -> Coord:
    return Coord(origin.lat + meters / METERS_PER_DEG_LAT, origin.lon)


def east_of(origin: Coord, meters: float) -> Coord:
    return Coord(origin.lat, origin.lon + meters / (METERS_PER_DEG_LAT * math.cos(math.radians(origin.lat))))


def fix(location: Coord, speed: Optional[float] = None) -> LocationUpdate:
    return LocationUpdate(location=location, timestamp=datetime.now(), speed=speed)


class RecordingRouteProvider:
    """DirectRouteProvider that records requests and can be told to fail."""

    def __init__(self) -> None:
        self.requests: List[RouteRequest] = []
        self.return_none = False
        self.error: Optional[Exception] = None
        self.on_request = None
        self._inner = DirectRouteProvider(street_name="Market St")

    def calculate_route(self, request: RouteRequest):
        self.requests.append(request)
        if self.on_request:
            self.on_request(request)
        if self.error:
            raise self.error
        if self.return_none:
            return None
        return self._inner.calculate_route(request)


class RecordingDisplay:
    def __init__(self) -> None:
        self.frames: List[tuple] = []

    def show_text(self, text: str, duration_s: Optional[float] = None) -> None:
        self.frames.append((text, duration_s))

    @property
    def texts(self) -> List[str]:
        return [t for t, _ in self.frames]

    @property
    def last(self) -> Optional[str]:
        return self.frames[-1][0] if self.frames else None


class RecordingVoice:
    def __init__(self) -> None:
        self.spoken: List[str] = []

    def speak(self, text: str) -> None:
        self.spoken.append(text)


class ScriptedSceneProvider:
    def __init__(self) -> None:
        self.result: Optional[SceneContext] = SceneContext("Busy street with cafes", detected=True, confidence=0.8)
        self.error: Optional[Exception] = None
        self.calls = 0

    def describe(self, location: Coord):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def gps():
    return SimulatedLocationSource(initial=SF_START)


@pytest.fixture
def provider():
    return RecordingRouteProvider()


@pytest.fixture
def display():
    return RecordingDisplay()


@pytest.fixture
def voice():
    return RecordingVoice()


@pytest.fixture
def scene():
    return ScriptedSceneProvider()


@pytest.fixture
def geocoder():
    return StaticGeocoder({"civic market": SF_NORTH})


@pytest.fixture
def make_manager(provider, geocoder, gps, display, voice, scene, scheduler):
    def _make(settings: Optional[NavigationSettings] = None, config: Optional[NavConfig] = None,
              **overrides) -> NavigationManager:
        kwargs = dict(
            route_provider=provider,
            geocoder=geocoder,
            location_source=gps,
            display=display,
            voice=voice,
            scene_provider=scene,
            scheduler=scheduler,
            settings=settings,
            config=config,
        )
        kwargs.update(overrides)
        return NavigationManager(**kwargs)
    return _make
