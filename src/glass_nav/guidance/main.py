# main.py
# Entry point: simulates a GPS walk feeding positions into NavigationManager.
# In production, replace SimulatedLocationSource with the glasses' GPS stream
# and ManualScheduler with a NavigationSession from session.py.
#
# Run: python -m glass_nav.guidance.main [--voice]

import logging
import sys
import time

from .models import Coord, NavigationEventType
from .nav_config import NavConfig, NavigationSettings
from .navigation_manager import NavigationManager, DISPLAY_TASK, SCENE_TASK
from .providers import (
    ConsoleDisplay,
    CoordinateSceneProvider,
    DirectRouteProvider,
    SimulatedLocationSource,
    StaticGeocoder,
)
from .scheduler import ManualScheduler

# ------------------------------------------------------------------
# Logging setup: configure once here, all modules inherit
# ------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# ------------------------------------------------------------------
# Config: tweak thresholds or paths here, not inside the modules
# ------------------------------------------------------------------
config = NavConfig(
    destination_threshold_m=30.0,
    route_deviation_threshold_m=50.0,
    max_off_route_checks=3,
    log_dir="logs",
)

settings = NavigationSettings(
    transportation_mode="walking",
    announcement_frequency=4,
    distance_units="metric",
)

# ------------------------------------------------------------------
# Simulation coordinates (Market St → Civic Center, San Francisco)
# ------------------------------------------------------------------
PLACES = {
    "civic market": Coord(37.7849, -122.4194),
    "corner store": Coord(37.7799, -122.4164),
}

test_locations = [
    Coord(37.7749, -122.4194),   # Start
    Coord(37.7758, -122.4194),   # Walking north
    Coord(37.7767, -122.4194),
    Coord(37.7776, -122.4180),   # Drifting east...
    Coord(37.7776, -122.4170),   # ...off route
    Coord(37.7776, -122.4165),   # third deviation → recalculation
    Coord(37.7790, -122.4170),   # following the new route
    Coord(37.7810, -122.4180),
    Coord(37.7830, -122.4190),
    Coord(37.7847, -122.4194),   # Arrival
]

ORIGIN = test_locations[0]


def main() -> None:
    voice = None
    if "--voice" in sys.argv:
        from ..speech.tts import Speaker
        voice = Speaker()

    # 1. Wire the collaborators
    gps = SimulatedLocationSource(initial=ORIGIN)
    scheduler = ManualScheduler()
    nav = NavigationManager(
        route_provider=DirectRouteProvider(street_name="Market St"),
        geocoder=StaticGeocoder(PLACES),
        location_source=gps,
        display=ConsoleDisplay(),
        voice=voice,
        scene_provider=CoordinateSceneProvider(),
        scheduler=scheduler,
        settings=settings,
        config=config,
    )

    for event_type in NavigationEventType:
        nav.events.subscribe(event_type, lambda e: print(f"  ★ event: {e.type.value}"))

    # 2. Request a route
    success, msg = nav.start_navigation("Civic Market")
    print(f"[Main] {msg}")
    if not success:
        return

    print("\n--- GPS Loop Active ---")

    # 3. GPS loop, replace with real GPS feed in production
    for position in test_locations[1:]:
        gps.push(position, speed=1.4)
        state = nav.state
        print(f"  GPS {position.lat:.4f},{position.lon:.4f} → "
              f"step {state.current_step_index}/{state.total_steps}, "
              f"progress {state.route_progress:.0f}%, off_route={state.is_off_route}")
        print(f"  Status: {nav.get_navigation_status()}")

        # Timers are driven by hand in the simulation
        scheduler.fire(DISPLAY_TASK)
        if scheduler.is_periodic_active(SCENE_TASK):
            scheduler.fire(SCENE_TASK)

        if not state.is_navigating:
            print("  ✓  Destination reached. Navigation ended.")
            break

        # Simulate GPS poll interval (remove in real use)
        time.sleep(0.05)

    nav.restart_session()
    nav.shutdown()
    if voice:
        voice.wait()
        voice.close()

    print("\n--- Session complete ---")
    print(f"    Log files written to: {config.log_dir}/")


if __name__ == "__main__":
    main()
