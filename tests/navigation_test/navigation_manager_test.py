import json
import logging

import pytest

from conftest import SF_NORTH, SF_START, east_of, fix, north_of
from glass_nav.guidance.errors import LocationUnavailable
from glass_nav.guidance.models import NavigationEventType, NavPhase, RouteStatus, SceneContext
from glass_nav.guidance.nav_config import NavConfig, NavigationSettings
from glass_nav.guidance.navigation_manager import DISPLAY_TASK, SCENE_TASK
from glass_nav.guidance.providers import SimulatedLocationSource
from glass_nav.guidance.scheduler import ManualScheduler

E = NavigationEventType

CORNER = north_of(SF_START, 600)
TURN_DESTINATION = east_of(CORNER, 400)

OFF_ROUTE_POINT = east_of(north_of(SF_START, 300), 100)
ON_ROUTE_POINT = north_of(SF_START, 400)


def _record(manager):
    events = []
    manager.events.subscribe_all(events.append)
    return events


def _types(events):
    return [e.type for e in events]


@pytest.fixture
def nav(make_manager):
    manager = make_manager()
    ok, msg = manager.start_navigation("civic market")
    assert ok, msg
    return manager


@pytest.fixture
def deferred():
    return ManualScheduler(defer_async=True)


@pytest.fixture
def deferred_nav(make_manager, deferred):
    manager = make_manager(scheduler=deferred)
    ok, msg = manager.start_navigation("civic market")
    assert ok, msg
    return manager


# ---------------------------------------------------------------------------
# start_navigation
# ---------------------------------------------------------------------------

def test_start_navigation_success(make_manager, provider, gps, scheduler, voice):
    manager = make_manager()
    events = _record(manager)

    ok, msg = manager.start_navigation("civic market")

    assert ok
    assert msg == "Route ready. 2 steps."
    assert manager.phase is NavPhase.NAVIGATING
    assert manager.is_session_locked()

    state = manager.state
    assert state.is_navigating
    assert state.current_location == SF_START
    assert state.total_steps == len(manager.instructions) == 2
    assert state.current_step_index == 1
    assert state.current_instruction == manager.instructions[0]
    assert state.next_instruction.is_destination

    assert provider.requests[0].origin == SF_START
    assert provider.requests[0].destination == SF_NORTH
    assert provider.requests[0].mode == "walking"

    assert gps.subscriber_count == 1
    assert scheduler.is_periodic_active(DISPLAY_TASK)
    assert scheduler.is_periodic_active(SCENE_TASK)
    assert scheduler.periodic[DISPLAY_TASK][0] == 1
    assert scheduler.periodic[SCENE_TASK][0] == 20

    assert voice.spoken[0] == "Navigation started. 1.1 km, estimated time 13 minutes."
    assert _types(events) == [E.NAVIGATION_STARTED]
    assert events[0].data["destination"] == SF_NORTH
    assert events[0].data["route"] is state.current_route


def test_start_navigation_with_coordinates(make_manager, provider):
    manager = make_manager()
    ok, _ = manager.start_navigation(SF_NORTH)
    assert ok
    assert provider.requests[0].destination == SF_NORTH


def test_start_navigation_passes_preferences(make_manager, provider):
    settings = NavigationSettings(transportation_mode="cycling", route_type="avoid_highways",
                                  distance_units="imperial", voice_language="fr")
    manager = make_manager(settings=settings)
    manager.start_navigation("civic market")

    request = provider.requests[0]
    assert request.mode == "cycling"
    assert request.avoid == ("highways",)
    assert request.units == "imperial"
    assert request.language == "fr"


@pytest.mark.parametrize("failure,message", [
    (PermissionError("denied"), "Location permission denied. Please allow location access for navigation."),
    (TimeoutError("no fix"), "Timed out waiting for a GPS fix. Please try again in an open area."),
    (RuntimeError("gps chip"), "Unable to get current location. Please check GPS settings."),
])
def test_start_navigation_location_failures(make_manager, gps, provider, display, failure, message):
    gps.failure = failure
    manager = make_manager()

    ok, msg = manager.start_navigation("civic market")

    assert not ok
    assert msg == message
    assert manager.phase is NavPhase.IDLE
    assert not manager.is_session_locked()
    assert provider.requests == []
    assert display.frames[-1] == (message, 5)


def test_start_navigation_without_any_fix(make_manager, provider):
    manager = make_manager(location_source=SimulatedLocationSource())
    ok, msg = manager.start_navigation("civic market")
    assert not ok
    assert msg == LocationUnavailable().user_message
    assert provider.requests == []


def test_start_navigation_destination_not_found(make_manager, provider):
    manager = make_manager()
    ok, msg = manager.start_navigation("atlantis")
    assert not ok
    assert msg == 'Unable to find location "atlantis". Please try a more specific address.'
    assert provider.requests == []
    assert not manager.is_session_locked()


@pytest.mark.parametrize("configure", [
    lambda p: setattr(p, "return_none", True),
    lambda p: setattr(p, "error", ConnectionError("routing backend down")),
])
def test_start_navigation_route_unavailable(make_manager, provider, gps, configure):
    configure(provider)
    manager = make_manager()

    ok, msg = manager.start_navigation("civic market")

    assert not ok
    assert msg == "Unable to calculate route. Please try a different destination."
    assert manager.phase is NavPhase.IDLE
    assert manager.state.current_route is None
    assert gps.subscriber_count == 0


def test_start_navigation_to_current_position_fails(make_manager):
    manager = make_manager()
    ok, msg = manager.start_navigation(SF_START)
    assert not ok
    assert msg == "Unable to calculate route. Please try a different destination."


def test_start_navigation_rejected_while_routing(make_manager, provider):
    manager = make_manager()
    nested = []

    def start_again(request):
        nested.append((manager.phase, manager.start_navigation("civic market")))

    provider.on_request = start_again
    ok, _ = manager.start_navigation("civic market")

    assert ok
    assert nested == [(NavPhase.ROUTING, (False, "Route calculation already in progress."))]
    assert len(provider.requests) == 1


# ---------------------------------------------------------------------------
# Location updates
# ---------------------------------------------------------------------------

def test_location_update_when_idle(make_manager, display):
    manager = make_manager()
    result = manager.on_location_update(fix(SF_START))
    assert result.status is RouteStatus.INACTIVE
    assert manager.state.current_location == SF_START
    assert display.frames == []


def test_progressing_update(nav):
    here = north_of(SF_START, 300)
    result = nav.on_location_update(fix(here, speed=1.5))

    assert result.status is RouteStatus.PROGRESSING
    assert result.distance_to_next == pytest.approx(812, abs=1)
    assert result.message == "812 m - ↑ Market St"
    assert nav.state.current_speed == 1.5
    assert nav.state.route_progress == pytest.approx(27, abs=0.5)
    assert nav.state.time_to_destination == pytest.approx(812 / 1.4, rel=1e-2)


def test_fixes_arrive_through_subscription(nav, gps):
    gps.push(north_of(SF_START, 200))
    assert nav.state.current_location == north_of(SF_START, 200)


def test_arrival(nav, gps, voice):
    events = _record(nav)

    gps.push(north_of(SF_NORTH, -20))

    assert nav.phase is NavPhase.STOPPED
    assert not nav.state.is_navigating
    assert nav.is_session_locked()
    assert nav.state.route_progress == 100
    assert nav.state.current_instruction.is_destination
    assert nav.state.current_step_index == nav.state.total_steps
    assert _types(events) == [E.DESTINATION_REACHED]
    assert events[0].data["location"] == north_of(SF_NORTH, -20)
    assert voice.spoken[-1].startswith("You have arrived at your destination")
    # Reduced-accuracy tracking keeps the arrow alive.
    assert gps.subscriber_count == 1
    assert nav.is_tracking_location


def test_arrival_result(nav):
    result = nav.on_location_update(fix(SF_NORTH))
    assert result.status is RouteStatus.FINISHED
    assert result.distance_to_next == 0


def test_instruction_advancement(make_manager):
    manager = make_manager()
    manager.start_navigation(TURN_DESTINATION, waypoints=[CORNER])
    events = _record(manager)
    assert manager.state.total_steps == 3
    assert manager.state.current_instruction.maneuver == "turn-sharp-right"

    result = manager.on_location_update(fix(north_of(SF_START, 580)))

    assert result.status is RouteStatus.INSTRUCTION_ADVANCED
    assert manager.state.current_step_index == 2
    assert manager.state.current_instruction is manager.instructions[1]
    assert result.message == manager.instructions[1].text
    assert _types(events) == [E.INSTRUCTION_UPDATED]
    assert events[0].data["step_index"] == 2
    assert events[0].data["total_steps"] == 3


def test_arrival_wins_over_advancement(make_manager):
    manager = make_manager()
    manager.start_navigation(TURN_DESTINATION, waypoints=[CORNER])
    manager.on_location_update(fix(north_of(SF_START, 580)))
    events = _record(manager)

    result = manager.on_location_update(fix(east_of(CORNER, 380)))

    assert result.status is RouteStatus.FINISHED
    assert _types(events) == [E.DESTINATION_REACHED]
    assert manager.state.current_step_index == 3


def test_pointer_stays_when_far_from_maneuver(nav):
    nav.on_location_update(fix(north_of(SF_START, 500)))
    assert nav.state.current_step_index == 1


# ---------------------------------------------------------------------------
# Off-route detection and recalculation
# ---------------------------------------------------------------------------

def test_off_route_needs_consecutive_checks(deferred_nav, provider, display):
    events = _record(deferred_nav)

    statuses = [deferred_nav.on_location_update(fix(OFF_ROUTE_POINT)).status for _ in range(3)]

    assert statuses == [RouteStatus.PROGRESSING, RouteStatus.PROGRESSING, RouteStatus.OFF_ROUTE]
    assert deferred_nav.state.is_off_route
    assert _types(events) == [E.OFF_ROUTE_DETECTED]
    assert events[0].data["deviation_m"] == pytest.approx(100, abs=1)
    assert "Off route - recalculating..." in display.texts
    # Recalculation is in flight but not yet requested from the provider.
    assert len(provider.requests) == 1


def test_off_route_recalculation(deferred_nav, deferred, provider, display):
    original = deferred_nav.state.current_route
    events = _record(deferred_nav)
    for _ in range(4):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))

    deferred.run_pending()

    assert len(provider.requests) == 2
    request = provider.requests[1]
    assert request.origin == OFF_ROUTE_POINT
    assert request.destination == SF_NORTH
    assert request.waypoints == ()

    assert deferred_nav.state.current_route is not original
    assert deferred_nav.state.current_route.start == OFF_ROUTE_POINT
    assert not deferred_nav.state.is_off_route
    assert deferred_nav.off_route_count == 0
    assert deferred_nav.state.current_step_index == 1
    assert _types(events) == [E.OFF_ROUTE_DETECTED, E.ROUTE_RECALCULATED]
    assert events[1].data["reason"] == "off_route"
    assert "Route recalculated" in display.texts


def test_on_route_fix_resets_deviation_count(deferred_nav):
    for _ in range(2):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))
    assert deferred_nav.off_route_count == 2

    deferred_nav.on_location_update(fix(ON_ROUTE_POINT))
    assert deferred_nav.off_route_count == 0

    for _ in range(2):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))
    assert not deferred_nav.state.is_off_route


def test_back_on_route_clears_flag(deferred_nav, display, voice):
    for _ in range(3):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))
    assert deferred_nav.state.is_off_route

    result = deferred_nav.on_location_update(fix(ON_ROUTE_POINT))

    assert result.status is RouteStatus.PROGRESSING
    assert not deferred_nav.state.is_off_route
    assert "Back on route" in display.texts
    assert "Back on route" in voice.spoken


def test_recalculation_failure_is_not_retried(deferred_nav, deferred, provider, display):
    original = deferred_nav.state.current_route
    provider.return_none = True
    for _ in range(3):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))

    deferred.run_pending()

    assert "Unable to recalculate route" in display.texts
    assert deferred_nav.state.current_route is original
    assert deferred_nav.state.is_off_route

    for _ in range(3):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))
    assert deferred.pending == []
    assert len(provider.requests) == 2


def test_stale_recalculation_after_restart_is_discarded(deferred_nav, deferred):
    events = _record(deferred_nav)
    for _ in range(3):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))

    deferred_nav.restart_session()
    deferred.run_pending()

    assert deferred_nav.phase is NavPhase.IDLE
    assert deferred_nav.state.current_route is None
    assert E.ROUTE_RECALCULATED not in _types(events)


def test_recalculation_after_stop_is_dropped(deferred_nav, deferred):
    original = deferred_nav.state.current_route
    for _ in range(3):
        deferred_nav.on_location_update(fix(OFF_ROUTE_POINT))

    deferred_nav.stop_navigation()
    deferred.run_pending()

    assert deferred_nav.state.current_route is original
    assert deferred_nav.phase is NavPhase.STOPPED


# ---------------------------------------------------------------------------
# stop / restart
# ---------------------------------------------------------------------------

def test_stop_navigation(nav, gps, scheduler, display):
    route = nav.state.current_route
    events = _record(nav)

    nav.stop_navigation()
    nav.stop_navigation()

    assert nav.phase is NavPhase.STOPPED
    assert nav.is_session_locked()
    assert nav.state.current_route is route
    assert _types(events) == [E.NAVIGATION_CANCELLED]
    assert display.last == 'Navigation stopped\n\nSay "restart session" to start a new route'
    assert gps.subscriber_count == 1
    assert scheduler.is_periodic_active(DISPLAY_TASK)

    scheduler.fire(DISPLAY_TASK)
    assert 'Session Locked - Say "restart session"' in display.last
    assert "remaining" not in display.last


def test_stopped_session_keeps_arrow_updated(nav, gps, display):
    nav.stop_navigation()
    gps.push(east_of(SF_NORTH, 300))
    assert display.last.splitlines()[2] == "<"


def test_restart_session(nav, gps, scheduler, voice):
    events = _record(nav)
    nav.on_location_update(fix(north_of(SF_START, 100)))

    nav.restart_session()

    assert nav.phase is NavPhase.IDLE
    assert not nav.is_session_locked()
    assert nav.state.current_route is None
    assert nav.state.current_location == north_of(SF_START, 100)
    assert nav.instructions == ()
    assert gps.subscriber_count == 0
    assert scheduler.active_periodic() == []
    assert voice.spoken[-1] == "Session restarted. You can now navigate to a new destination."
    assert _types(events) == [E.SESSION_RESTARTED]


def test_restart_is_idempotent(make_manager, gps):
    manager = make_manager()
    events = _record(manager)
    manager.restart_session()
    manager.restart_session()
    assert manager.phase is NavPhase.IDLE
    assert _types(events) == [E.SESSION_RESTARTED, E.SESSION_RESTARTED]

    ok, _ = manager.start_navigation("civic market")
    assert ok
    assert gps.subscriber_count == 1


def test_display_timer_ignored_after_restart(nav, scheduler, display):
    nav.restart_session()
    frames = len(display.frames)
    assert DISPLAY_TASK not in scheduler.periodic
    nav.on_location_update(fix(SF_START))
    assert len(display.frames) == frames


# ---------------------------------------------------------------------------
# Waypoints
# ---------------------------------------------------------------------------

def test_add_waypoint_without_route(make_manager):
    assert not make_manager().add_waypoint(CORNER)


def test_add_waypoint(nav, provider, voice):
    events = _record(nav)
    here = north_of(SF_START, 100)
    stop = east_of(north_of(SF_START, 500), 200)
    nav.on_location_update(fix(here))

    assert nav.add_waypoint(stop)

    request = provider.requests[-1]
    assert request.origin == here
    assert request.destination == SF_NORTH
    assert request.waypoints == (stop,)
    assert nav.waypoints == (stop,)
    assert nav.state.total_steps == 3
    assert nav.state.current_step_index == 1
    assert voice.spoken[-1] == "Route updated with new waypoint"
    assert _types(events) == [E.ROUTE_RECALCULATED]
    assert events[0].data["reason"] == "waypoint"


def test_add_waypoint_by_name(nav, provider, geocoder):
    geocoder.places["corner store"] = east_of(north_of(SF_START, 500), 200)
    assert nav.add_waypoint("corner store")
    assert provider.requests[-1].waypoints == (geocoder.places["corner store"],)


def test_add_waypoint_failure_keeps_route(nav, provider, display):
    route = nav.state.current_route
    provider.return_none = True

    assert not nav.add_waypoint(CORNER)
    assert not nav.add_waypoint("atlantis")

    assert nav.state.current_route is route
    assert nav.waypoints == ()
    assert display.last == "Unable to recalculate route"


# ---------------------------------------------------------------------------
# Voice announcements
# ---------------------------------------------------------------------------

def _turn_cues(voice):
    return [text for text in voice.spoken if text.startswith("In ")]


def test_voice_announcement_once_per_threshold(make_manager, voice):
    manager = make_manager()
    manager.start_navigation(TURN_DESTINATION, waypoints=[CORNER])

    manager.on_location_update(fix(north_of(SF_START, 105)))
    manager.on_location_update(fix(north_of(SF_START, 110)))
    manager.on_location_update(fix(north_of(SF_START, 405)))

    assert _turn_cues(voice) == [
        "In 495 m, turn sharply right onto Market St",
        "In 195 m, turn sharply right onto Market St",
    ]


def test_voice_markers_reset_on_advance(make_manager, voice):
    manager = make_manager()
    manager.start_navigation(TURN_DESTINATION, waypoints=[CORNER])
    manager.on_location_update(fix(north_of(SF_START, 590)))

    # Past the corner: the continue instruction gets its own announcements.
    manager.on_location_update(fix(east_of(CORNER, 200)))
    assert _turn_cues(voice)[-1] == "In 200 m, continue on Market St"


def test_progress_announcement_once(nav, voice):
    nav.on_location_update(fix(north_of(SF_START, 100)))
    nav.on_location_update(fix(north_of(SF_START, 120)))
    progress = [t for t in voice.spoken if t.endswith("remaining to destination")]
    assert progress == ["1.0 km remaining to destination"]


def test_voice_disabled(nav, voice):
    nav.update_settings(voice_guidance=False)
    before = list(voice.spoken)
    nav.on_location_update(fix(north_of(SF_START, 600)))
    nav.stop_navigation()
    assert voice.spoken == before


# ---------------------------------------------------------------------------
# Settings and status
# ---------------------------------------------------------------------------

def test_navigation_status(make_manager, nav):
    assert make_manager().get_navigation_status() == "Navigation is not active"
    assert nav.get_navigation_status() == "1.1 km remaining, ETA 13m"


def test_update_settings_refreshes_display(nav, display):
    frames = len(display.frames)
    nav.update_settings(distance_units="imperial")

    assert nav.settings.distance_units == "imperial"
    assert len(display.frames) == frames + 1
    assert nav.get_navigation_status() == "0.7 mi remaining, ETA 13m"


def test_update_settings_rejects_unknown_keys(nav):
    with pytest.raises(ValueError):
        nav.update_settings(colour_scheme="dark")
    with pytest.raises(ValueError):
        nav.update_settings(announcement_frequency=9)
    assert nav.settings == NavigationSettings()


# ---------------------------------------------------------------------------
# Display and scene context
# ---------------------------------------------------------------------------

def test_display_frame(nav, display):
    lines = display.last.splitlines()
    assert lines[0] == "------"
    assert lines[1] == "Continue north to your destination on Market St in 1.1 km (1/2)"
    assert lines[2] == "^"
    assert lines[4] == "Navigation Session Active"
    assert lines[6] == "Store sign detected"
    assert lines[8] == "Busy street with cafes"
    assert lines[-1] == "ETA: 13m | 1.1 km remaining"
    assert display.frames[-1][1] is None


def test_display_frame_shows_speed(make_manager, display):
    manager = make_manager(settings=NavigationSettings(show_speed=True, show_eta=False))
    manager.start_navigation("civic market")
    manager.on_location_update(fix(north_of(SF_START, 100), speed=1.5))
    assert display.last.splitlines()[-1] == "1.0 km remaining | 5 km/h"


def test_scene_failure_falls_back_to_coordinates(make_manager, scene):
    scene.error = RuntimeError("camera offline")
    manager = make_manager()
    manager.start_navigation("civic market")
    assert manager.scene_context.description == "Location: 37.7749, -122.4194"


def test_scene_failure_keeps_last_value(nav, scene, scheduler):
    scene.error = RuntimeError("camera offline")
    scheduler.fire(SCENE_TASK)
    assert scene.calls == 2
    assert nav.scene_context.description == "Busy street with cafes"


def test_scene_empty_result_uses_fallback(nav, scene, scheduler):
    scene.result = None
    scheduler.fire(SCENE_TASK)
    assert nav.scene_context.description.startswith("Location: ")
    assert not nav.scene_context.detected


def test_scene_refresh_not_stacked(deferred_nav, deferred, scene):
    deferred.fire(SCENE_TASK)
    deferred.fire(SCENE_TASK)
    assert len(deferred.pending) == 1

    scene.result = SceneContext("Quiet side street")
    deferred.run_pending()
    assert scene.calls == 1
    assert deferred_nav.scene_context.description == "Quiet side street"


# ---------------------------------------------------------------------------
# Location subscriptions and teardown
# ---------------------------------------------------------------------------

class LeakyLocationSource(SimulatedLocationSource):
    """Unsubscribe does nothing, so stale callbacks keep firing."""

    def subscribe(self, accuracy, callback):
        super().subscribe(accuracy, callback)
        return lambda: None


class BrokenUnsubscribeSource(SimulatedLocationSource):
    def subscribe(self, accuracy, callback):
        super().subscribe(accuracy, callback)

        def unsubscribe():
            raise OSError("location service gone")

        return unsubscribe


def test_stale_subscription_fixes_are_ignored(make_manager, monkeypatch):
    source = LeakyLocationSource(initial=SF_START)
    manager = make_manager(location_source=source)
    manager.start_navigation("civic market")
    manager.stop_navigation()
    assert source.subscriber_count == 2

    seen = []
    monkeypatch.setattr(manager, "on_location_update", seen.append)
    source.push(north_of(SF_START, 50))

    assert len(seen) == 1


def test_unsubscribe_failure_is_logged(make_manager, caplog):
    source = BrokenUnsubscribeSource(initial=SF_START)
    manager = make_manager(location_source=source)
    manager.start_navigation("civic market")

    with caplog.at_level(logging.ERROR):
        manager.restart_session()

    assert "Failed to release location subscription." in caplog.text
    assert not manager.is_tracking_location
    assert manager.phase is NavPhase.IDLE


def test_shutdown(nav, gps, scheduler):
    nav.shutdown()
    assert gps.subscriber_count == 0
    assert scheduler.active_periodic() == []
    assert nav.events.listener_count(E.NAVIGATION_STARTED) == 0


def test_session_files_written(make_manager, tmp_path):
    manager = make_manager(config=NavConfig(log_dir=str(tmp_path)))
    manager.start_navigation("civic market")
    manager.on_location_update(fix(SF_NORTH))

    saved = json.loads((tmp_path / "active_route.json").read_text(encoding="utf-8"))
    assert saved["route"]["route_id"] == manager.state.current_route.route_id

    lines = (tmp_path / "nav_session.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["type"] for line in lines] == ["navigation_started", "destination_reached"]


# ---------------------------------------------------------------------------
# Collaborator failures
# ---------------------------------------------------------------------------

class FlakyDisplay:
    """Status frames fail; plain messages get through."""

    def __init__(self):
        self.messages = []

    def show_text(self, text, duration_s=None):
        if text.startswith("------"):
            raise RuntimeError("display link dropped")
        self.messages.append(text)


class MuteVoice:
    def speak(self, text):
        raise RuntimeError("audio device busy")


class NoTimerScheduler(ManualScheduler):
    def start_periodic(self, name, period_s, fn):
        raise RuntimeError("timer pool exhausted")


def test_display_failure_during_start_is_contained(make_manager, caplog):
    manager = make_manager(display=FlakyDisplay())

    with caplog.at_level(logging.ERROR):
        ok, _ = manager.start_navigation(SF_NORTH)

    assert ok
    assert manager.phase is NavPhase.NAVIGATING
    assert "Display update failed." in caplog.text


def test_failed_start_after_commit_rolls_back(make_manager, gps, display):
    manager = make_manager(scheduler=NoTimerScheduler())

    ok, msg = manager.start_navigation("civic market")

    assert not ok
    assert msg == "Navigation error. Please try again."
    assert manager.phase is NavPhase.IDLE
    assert not manager.is_session_locked()
    assert manager.state.current_route is None
    assert not manager.is_tracking_location
    assert gps.subscriber_count == 0
    assert display.frames[-1] == (msg, 5)


def test_display_failure_does_not_stop_fix_pipeline(make_manager, voice):
    display = FlakyDisplay()
    manager = make_manager(display=display)
    manager.start_navigation("civic market")

    result = manager.on_location_update(fix(north_of(SF_START, 100)))

    assert result.status is RouteStatus.PROGRESSING
    assert voice.spoken[-1] == "1.0 km remaining to destination"


def test_voice_failure_is_contained(make_manager, display, caplog):
    manager = make_manager(voice=MuteVoice())
    with caplog.at_level(logging.ERROR):
        ok, _ = manager.start_navigation("civic market")
        result = manager.on_location_update(fix(north_of(SF_START, 100)))

    assert ok
    assert result.status is RouteStatus.PROGRESSING
    assert display.last.splitlines()[-1].endswith("1.0 km remaining")
    assert "Voice output failed." in caplog.text
