# navigation_manager.py
# The navigation state machine for one user session.
# Every public method must be called from the session's serial execution point
# (see scheduler.py / session.py); nothing in here locks.

import logging
from typing import List, Optional, Sequence, Tuple, Union

from .errors import (
    DestinationNotFound,
    LocationUnavailable,
    NavigationError,
    RecalculationFailed,
    RouteUnavailable,
)
from .events import EventBus
from .geo_utils import (
    bearing,
    directional_arrow,
    distance,
    distance_to_polyline,
    format_distance,
    format_duration,
    format_speed,
)
from .instructions import (
    format_display_instruction,
    generate_instructions,
    generate_progress_announcement,
    generate_voice_announcement,
)
from .models import (
    Coord,
    Instruction,
    LocationUpdate,
    NavigationEventType,
    NavigationState,
    NavPhase,
    ProgressResult,
    Route,
    RouteRequest,
    RouteStatus,
    SceneContext,
)
from .nav_config import NavConfig, NavigationSettings, TRACKING_REALTIME, TRACKING_REDUCED
from .nav_logger import NavLogger
from .providers import (
    CoordinateSceneProvider,
    DisplaySink,
    Geocoder,
    LocationSource,
    RouteProvider,
    SceneContextProvider,
    VoiceSink,
)
from .scheduler import ManualScheduler, Scheduler

logger = logging.getLogger(__name__)

DISPLAY_TASK = "display_refresh"
SCENE_TASK = "scene_context_refresh"

Destination = Union[str, Coord]


class NavigationManager:
    """
    Turn-by-turn navigation for one wearer.

    Typical lifecycle:
        nav = NavigationManager(provider, geocoder, gps, display)
        ok, msg = nav.start_navigation("Ferry Building")

        # Location fixes arrive through the subscription started above,
        # or can be fed directly:
        result = nav.on_location_update(update)

        nav.stop_navigation()      # route remembered, session stays locked
        nav.restart_session()      # back to idle

    Args:
        route_provider:  Computes routes.
        geocoder:        Resolves address strings.
        location_source: GPS fixes and the live location stream.
        display:         Glasses text display.
        voice:           Optional speech output.
        scene_provider:  Optional surroundings description service.
        scheduler:       Runtime hooks; defaults to an inline ManualScheduler.
        settings:        User preferences.
        config:          Engine thresholds and periods.
    """

    def __init__(
        self,
        route_provider: RouteProvider,
        geocoder: Geocoder,
        location_source: LocationSource,
        display: DisplaySink,
        voice: Optional[VoiceSink] = None,
        scene_provider: Optional[SceneContextProvider] = None,
        scheduler: Optional[Scheduler] = None,
        settings: Optional[NavigationSettings] = None,
        config: Optional[NavConfig] = None,
    ) -> None:
        self.config = config or NavConfig()
        self.settings = settings or NavigationSettings()

        self._route_provider = route_provider
        self._geocoder = geocoder
        self._location_source = location_source
        self._display = display
        self._voice = voice
        self._scene_provider = scene_provider or CoordinateSceneProvider()
        self._fallback_scene = CoordinateSceneProvider()
        self._scheduler = scheduler or ManualScheduler()

        self.events = EventBus()
        self._nav_logger: Optional[NavLogger] = None
        if self.config.log_dir:
            self._nav_logger = NavLogger(self.config)
            self.events.subscribe_all(self._nav_logger.log_event)

        self.state = NavigationState()
        self.scene_context = SceneContext(
            description="Loading surroundings...",
            details="Initializing store sign detection...",
        )

        self._instructions: List[Instruction] = []
        self._instruction_index = 0
        self._waypoints: Tuple[Coord, ...] = ()
        self._last_announced_threshold: Optional[int] = None
        self._last_progress_milestone: Optional[float] = None
        self._off_route_count = 0

        self._routing = False
        self._recalculating = False
        self._route_generation = 0        # bumped whenever the route is replaced or dropped

        self._scene_pending = False
        self._scene_loaded = False

        self._unsubscribe_location = None
        self._location_token = 0          # fixes from older subscriptions are ignored

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def phase(self) -> NavPhase:
        if self._routing:
            return NavPhase.ROUTING
        if self.state.is_navigating:
            return NavPhase.NAVIGATING
        if self.state.session_locked:
            return NavPhase.STOPPED
        return NavPhase.IDLE

    @property
    def instructions(self) -> Tuple[Instruction, ...]:
        return tuple(self._instructions)

    @property
    def waypoints(self) -> Tuple[Coord, ...]:
        return self._waypoints

    @property
    def off_route_count(self) -> int:
        return self._off_route_count

    @property
    def is_tracking_location(self) -> bool:
        return self._unsubscribe_location is not None

    def is_session_locked(self) -> bool:
        return self.state.session_locked

    # ------------------------------------------------------------------
    # Navigation control
    # ------------------------------------------------------------------

    def start_navigation(
        self,
        destination: Destination,
        waypoints: Optional[Sequence[Destination]] = None,
    ) -> Tuple[bool, str]:
        """
        Calculate a route from the current position and begin guidance.

        Args:
            destination: Address / place name, or coordinates.
            waypoints:   Optional intermediate stops, in order.

        Returns:
            (success, message). Never raises.
        """
        if self._routing:
            return False, "Route calculation already in progress."

        self._routing = True
        previous_state = self.state
        try:
            return self._start(destination, waypoints or ())
        except NavigationError as e:
            logger.warning(f"Navigation start failed: {e.user_message}")
            msg = e.user_message
        except Exception:
            logger.exception("Error starting navigation.")
            msg = NavigationError.user_message
        finally:
            self._routing = False

        # A failure after the new state was committed must not leave the session locked.
        if self.state is not previous_state:
            self._reset_session()
        self._show_message(msg)
        return False, msg

    def _start(self, destination: Destination, waypoints: Sequence[Destination]) -> Tuple[bool, str]:
        origin = self._get_current_location()
        self._show_message("Calculating route...")

        dest = self._resolve_point(destination)
        stops = tuple(self._resolve_point(w) for w in waypoints)
        logger.info(f"Calculating route: {origin} → {dest} via {len(stops)} waypoint(s)")
        route = self._request_route(origin, dest, stops)

        self.state = NavigationState(
            is_navigating=True,
            session_locked=True,
            current_location=origin,
            current_speed=0.0,
            last_update=self.state.last_update,
        )
        self._waypoints = stops
        self._install_route(route)

        self._start_location_tracking()
        self._scheduler.start_periodic(DISPLAY_TASK, self.config.display_refresh_s, self._on_display_timer)
        self._scheduler.start_periodic(SCENE_TASK, self.config.scene_refresh_s, self._on_scene_timer)

        self._refresh_display()
        self._refresh_scene_context()

        units = self.settings.distance_units
        self._speak(
            f"Navigation started. {format_distance(route.distance_m, units)}, "
            f"estimated time {format_duration(route.duration_s)}."
        )
        self.events.emit(NavigationEventType.NAVIGATION_STARTED, {"route": route, "destination": dest})

        logger.info(f"Route ready: {len(self._instructions)} instructions. First: {self._instructions[0].text}")
        return True, f"Route ready. {len(self._instructions)} steps."

    def stop_navigation(self) -> None:
        """End guidance but keep the route and the session lock."""
        if not self.state.is_navigating:
            return

        self.state.is_navigating = False
        self.state.session_locked = True

        # Reduced-accuracy fixes keep the arrow pointing at the destination.
        self._start_location_tracking()
        self._refresh_display()

        self._show_message('Navigation stopped\n\nSay "restart session" to start a new route')
        self._speak("Navigation cancelled. Say restart session to start a new route.")
        logger.info("Navigation stopped by user.")
        self.events.emit(NavigationEventType.NAVIGATION_CANCELLED, {})

    def restart_session(self) -> None:
        """Forget the route and unlock. Safe to call in any state, any number of times."""
        self._reset_session()

        logger.info("Session restarted, all tracking stopped.")
        self._show_message("Session Restarted\n\nYou can now start a new navigation")
        self._speak("Session restarted. You can now navigate to a new destination.")
        self.events.emit(NavigationEventType.SESSION_RESTARTED, {})

    def _reset_session(self) -> None:
        """Drop the route, timers and GPS stream; keep the last known position."""
        self._route_generation += 1
        self._scheduler.cancel_periodic(DISPLAY_TASK)
        self._scheduler.cancel_periodic(SCENE_TASK)
        self._stop_location_tracking()

        self.state = NavigationState(
            current_location=self.state.current_location,
            current_speed=self.state.current_speed,
            last_update=self.state.last_update,
        )
        self._instructions = []
        self._instruction_index = 0
        self._waypoints = ()
        self._last_announced_threshold = None
        self._last_progress_milestone = None
        self._off_route_count = 0
        self._recalculating = False

    def add_waypoint(self, point: Destination) -> bool:
        """
        Re-route to the original destination through one more stop.

        Returns:
            True if the new route is active; False leaves everything as it was.
        """
        route = self.state.current_route
        location = self.state.current_location
        if route is None or location is None:
            return False

        try:
            stop = self._resolve_point(point)
            stops = self._waypoints + (stop,)
            new_route = self._request_route(location, route.end, stops)
        except NavigationError as e:
            logger.warning(f"Adding waypoint failed: {e.user_message}")
            self._show_message(RecalculationFailed.user_message)
            return False
        except Exception:
            logger.exception("Error adding waypoint.")
            self._show_message(RecalculationFailed.user_message)
            return False

        self._waypoints = stops
        self._install_route(new_route)
        self._refresh_display()
        self._speak("Route updated with new waypoint")
        self.events.emit(NavigationEventType.ROUTE_RECALCULATED, {"route": new_route, "reason": "waypoint"})
        return True

    def update_settings(self, **partial) -> None:
        """Merge new preferences; visible immediately while navigating."""
        self.settings = self.settings.merged(**partial)
        logger.info(f"Settings updated: {partial}")
        if self.state.is_navigating:
            self._refresh_display()

    def get_navigation_status(self) -> str:
        if not self.state.is_navigating or self.state.current_route is None:
            return "Navigation is not active"

        remaining = self._remaining_distance()
        eta = remaining / self.settings.average_speed_ms
        return (
            f"{format_distance(remaining, self.settings.distance_units)} remaining, "
            f"ETA {format_duration(eta, short=True)}"
        )

    def shutdown(self) -> None:
        """Session teardown: stop every periodic activity and release the GPS stream."""
        self._route_generation += 1
        self._scheduler.cancel_all()
        self._stop_location_tracking()
        self.events.clear()

    # ------------------------------------------------------------------
    # GPS update, called on every position fix
    # ------------------------------------------------------------------

    def on_location_update(self, update: LocationUpdate) -> ProgressResult:
        """
        Process a new fix.

        Args:
            update: Position, speed and timestamp from the location source.

        Returns:
            ProgressResult describing what this fix changed.
        """
        self.state.current_location = update.location
        self.state.current_speed = update.speed
        self.state.last_update = update.timestamp

        if self.state.is_navigating:
            return self._process_location_update(update.location)

        if self.state.session_locked:
            self._refresh_display()
        return ProgressResult(status=RouteStatus.INACTIVE, message="Navigation is not active.")

    def _process_location_update(self, location: Coord) -> ProgressResult:
        route = self.state.current_route
        if route is None:
            return ProgressResult(status=RouteStatus.INACTIVE, message="No active route.")

        # 1. Arrival wins over everything else.
        to_destination = distance(location, route.end)
        self.state.distance_to_destination = to_destination
        if to_destination <= self.config.destination_threshold_m:
            self._handle_destination_reached()
            return ProgressResult(
                status=RouteStatus.FINISHED,
                message="You have reached your destination.",
                distance_to_next=0.0,
                current_instruction=self.state.current_instruction,
            )

        # 2. Progress, 3. deviation, 4. advancement
        self._update_route_progress(location)
        self._check_off_route(location)
        advanced = self._update_current_instruction(location)

        # 5. Display, 6. voice
        self._refresh_display()
        self._handle_voice_announcements(location)

        current = self.state.current_instruction
        to_next = distance(location, current.location) if current else None
        self.state.distance_to_next_turn = to_next

        if self.state.is_off_route:
            return ProgressResult(
                status=RouteStatus.OFF_ROUTE,
                message="You are off the route. Recalculating...",
                distance_to_next=to_next,
                current_instruction=current,
            )
        if advanced:
            return ProgressResult(
                status=RouteStatus.INSTRUCTION_ADVANCED,
                message=current.text if current else "",
                distance_to_next=to_next,
                current_instruction=current,
            )
        compact = format_display_instruction(current, self.settings.distance_units, to_next) if current else ""
        return ProgressResult(
            status=RouteStatus.PROGRESSING,
            message=compact,
            distance_to_next=to_next,
            current_instruction=current,
        )

    # ------------------------------------------------------------------
    # Tick pipeline steps
    # ------------------------------------------------------------------

    def _update_route_progress(self, location: Coord) -> None:
        route = self.state.current_route
        remaining = self._remaining_distance(location)
        total = route.distance_m

        if total > 0:
            self.state.route_progress = max(0.0, min(100.0, (total - remaining) / total * 100))
        else:
            self.state.route_progress = 100.0
        self.state.time_to_destination = remaining / self.settings.average_speed_ms

    def _check_off_route(self, location: Coord) -> None:
        deviation = distance_to_polyline(location, self.state.current_route.polyline())

        if deviation > self.config.route_deviation_threshold_m:
            self._off_route_count += 1
            logger.debug(f"Deviation {deviation:.1f} m ({self._off_route_count}/{self.config.max_off_route_checks})")
            if self._off_route_count >= self.config.max_off_route_checks:
                self._handle_off_route(location, deviation)
            return

        self._off_route_count = 0
        if self.state.is_off_route:
            self.state.is_off_route = False
            logger.info("Back on route.")
            self._show_message("Back on route")
            self._speak("Back on route")

    def _handle_off_route(self, location: Coord, deviation: float) -> None:
        if self.state.is_off_route:
            return

        self.state.is_off_route = True
        logger.warning(f"Off route by {deviation:.0f} m, recalculating.")
        self._show_message("Off route - recalculating...")
        self._speak("Recalculating route")

        self.events.emit(NavigationEventType.OFF_ROUTE_DETECTED, {"location": location, "deviation_m": deviation})
        self._recalculate_route(location)

    def _recalculate_route(self, origin: Coord) -> None:
        """Fire-and-forget re-route; the result is applied on a later turn."""
        route = self.state.current_route
        if route is None or self._recalculating:
            return

        request = self._route_request(origin, route.end, ())
        generation = self._route_generation
        self._recalculating = True

        def work() -> Route:
            new_route = self._route_provider.calculate_route(request)
            if new_route is None:
                raise RecalculationFailed()
            return new_route

        self._scheduler.run_async(
            work, lambda result, error: self._apply_recalculation(generation, result, error),
        )

    def _apply_recalculation(self, generation: int, route: Optional[Route], error: Optional[BaseException]) -> None:
        if generation != self._route_generation:
            logger.info("Discarding stale recalculation result.")
            return
        self._recalculating = False
        if not self.state.is_navigating:
            logger.info("Navigation ended before recalculation finished; result dropped.")
            return

        if error is not None or route is None:
            failure = error if isinstance(error, RecalculationFailed) else RecalculationFailed()
            logger.warning(f"Route recalculation failed: {error}")
            self._show_message(failure.user_message)
            return

        self._waypoints = route.waypoints
        self._install_route(route)
        logger.info(f"Route recalculated: {route.route_id}")
        self._show_message("Route recalculated")
        self.events.emit(NavigationEventType.ROUTE_RECALCULATED, {"route": route, "reason": "off_route"})
        self._refresh_display()

    def _update_current_instruction(self, location: Coord) -> bool:
        """Move the pointer past every maneuver the wearer is already at."""
        advanced = False
        last = len(self._instructions) - 1

        while self._instruction_index < last:
            current = self._instructions[self._instruction_index]
            if current.is_destination:
                break
            if distance(location, current.location) >= self.config.instruction_threshold_m:
                break

            self._instruction_index += 1
            self._last_announced_threshold = None
            self.state.current_step_index = self._instruction_index + 1
            advanced = True

            logger.info(f"Instruction {self.state.current_step_index}/{self.state.total_steps}: "
                        f"{self._instructions[self._instruction_index].text}")
            self.events.emit(NavigationEventType.INSTRUCTION_UPDATED, {
                "instruction": self._instructions[self._instruction_index],
                "step_index": self.state.current_step_index,
                "total_steps": self.state.total_steps,
            })

        self._sync_instruction_refs()
        return advanced

    def _handle_voice_announcements(self, location: Coord) -> None:
        instruction = self.state.current_instruction
        if not self.settings.voice_guidance or instruction is None:
            return

        if not instruction.is_destination:
            announcement = generate_voice_announcement(
                instruction,
                distance(location, instruction.location),
                self.settings,
                self._last_announced_threshold,
                tolerance_m=self.config.announcement_tolerance_m,
                voice_prefix_m=self.config.voice_distance_prefix_m,
            )
            if announcement:
                text, threshold = announcement
                self._last_announced_threshold = threshold
                self._speak(text)

        progress = generate_progress_announcement(
            self._remaining_distance(location),
            self.settings.distance_units,
            self._last_progress_milestone,
            tolerance_m=self.config.progress_tolerance_m,
        )
        if progress:
            text, milestone = progress
            self._last_progress_milestone = milestone
            self._speak(text)

    def _handle_destination_reached(self) -> None:
        self.state.is_navigating = False
        self.state.session_locked = True
        self.state.route_progress = 100.0

        # Show the arrival instruction whatever the pointer said.
        if self._instructions:
            self._instruction_index = len(self._instructions) - 1
            self.state.current_step_index = len(self._instructions)
            self._sync_instruction_refs()

        self._start_location_tracking()
        self._refresh_display()

        logger.info("Destination reached.")
        self._show_message('You have arrived at your destination!\n\nSay "restart session" to start a new route')
        self._speak("You have arrived at your destination. Say restart session to start a new route.")
        self.events.emit(NavigationEventType.DESTINATION_REACHED, {"location": self.state.current_location})

    # ------------------------------------------------------------------
    # Route helpers
    # ------------------------------------------------------------------

    def _get_current_location(self) -> Coord:
        accuracy = self._tracking_accuracy()
        try:
            return self._location_source.get_latest_location(accuracy)
        except Exception as e:
            logger.error(f"Error getting current location: {e!r}")
            raise LocationUnavailable.from_exception(e) from e

    def _resolve_point(self, point: Destination) -> Coord:
        if isinstance(point, Coord):
            return point
        try:
            results = self._geocoder.geocode(point)
        except Exception as e:
            logger.error(f"Geocoding '{point}' failed: {e!r}")
            raise DestinationNotFound(point) from e
        if not results:
            raise DestinationNotFound(point)
        logger.info(f"Geocoded '{point}' to {results[0]}")
        return results[0]

    def _route_request(self, origin: Coord, destination: Coord, waypoints: Tuple[Coord, ...]) -> RouteRequest:
        return RouteRequest(
            origin=origin,
            destination=destination,
            waypoints=waypoints,
            mode=self.settings.transportation_mode,
            avoid=tuple(self.settings.avoidance),
            units=self.settings.distance_units,
            language=self.settings.voice_language,
        )

    def _request_route(self, origin: Coord, destination: Coord, waypoints: Tuple[Coord, ...]) -> Route:
        request = self._route_request(origin, destination, waypoints)
        try:
            route = self._route_provider.calculate_route(request)
        except Exception as e:
            logger.error(f"Route provider failed: {e!r}")
            raise RouteUnavailable() from e
        if route is None:
            raise RouteUnavailable()
        return route

    def _install_route(self, route: Route) -> None:
        """Swap in a new route and a freshly generated instruction list."""
        self._route_generation += 1
        self._instructions = generate_instructions(route)
        self._instruction_index = 0
        self._last_announced_threshold = None
        self._last_progress_milestone = None
        self._off_route_count = 0
        self._recalculating = False

        self.state.current_route = route
        self.state.is_off_route = False
        self.state.route_progress = 0.0
        self.state.total_steps = len(self._instructions)
        self.state.current_step_index = 1
        self._sync_instruction_refs()

        if self._nav_logger:
            self._nav_logger.save_route(route)

    def _sync_instruction_refs(self) -> None:
        i = self._instruction_index
        self.state.current_instruction = self._instructions[i] if i < len(self._instructions) else None
        self.state.next_instruction = self._instructions[i + 1] if i + 1 < len(self._instructions) else None

    def _remaining_distance(self, location: Optional[Coord] = None) -> float:
        """Distance to the current maneuver plus the length of every later step."""
        route = self.state.current_route
        location = location or self.state.current_location
        if route is None or location is None:
            return 0.0

        current = self.state.current_instruction
        if current is None or current.is_destination:
            return distance(location, route.end)

        later = sum(i.distance_m for i in self._instructions[self._instruction_index + 1:])
        return distance(location, current.location) + later

    # ------------------------------------------------------------------
    # Location tracking
    # ------------------------------------------------------------------

    def _tracking_accuracy(self) -> str:
        return TRACKING_REALTIME if self.state.is_navigating else TRACKING_REDUCED

    def _start_location_tracking(self) -> None:
        """Subscribe to the GPS stream, replacing any current subscription."""
        self._stop_location_tracking()
        accuracy = self._tracking_accuracy()
        token = self._location_token

        def on_fix(update: LocationUpdate) -> None:
            self._scheduler.post(self._deliver_fix, token, update)

        try:
            self._unsubscribe_location = self._location_source.subscribe(accuracy, on_fix)
            logger.info(f"Location tracking started with {accuracy} accuracy.")
        except Exception:
            logger.exception("Error subscribing to location stream.")

    def _stop_location_tracking(self) -> None:
        self._location_token += 1
        unsubscribe, self._unsubscribe_location = self._unsubscribe_location, None
        if unsubscribe is None:
            return
        try:
            unsubscribe()
            logger.info("Location tracking stopped.")
        except Exception:
            # Best effort: not retried.
            logger.exception("Failed to release location subscription.")

    def _deliver_fix(self, token: int, update: LocationUpdate) -> None:
        if token != self._location_token:
            return
        self.on_location_update(update)

    # ------------------------------------------------------------------
    # Periodic activities
    # ------------------------------------------------------------------

    def _on_display_timer(self) -> None:
        if self.state.session_locked:
            self._refresh_display()

    def _on_scene_timer(self) -> None:
        if self.state.session_locked and self.state.current_location:
            self._refresh_scene_context()

    def _refresh_scene_context(self) -> None:
        location = self.state.current_location
        if location is None or self._scene_pending:
            return

        self._scene_pending = True
        self._scheduler.run_async(
            lambda: self._scene_provider.describe(location),
            lambda result, error: self._apply_scene_context(location, result, error),
        )

    def _apply_scene_context(self, location: Coord, context: Optional[SceneContext],
                             error: Optional[BaseException]) -> None:
        self._scene_pending = False

        if error is not None:
            logger.warning(f"Scene context unavailable: {error!r}")
            if self._scene_loaded:
                return
            context = None

        if context is None or not context.description:
            context = self._fallback_scene.describe(location)

        self.scene_context = context
        self._scene_loaded = True
        if self.state.session_locked:
            self._refresh_display()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def render_display(self) -> Optional[str]:
        """The status frame for the glasses, or None when there is nothing to show."""
        state = self.state
        instruction = state.current_instruction
        if instruction is None or not state.session_locked:
            return None

        units = self.settings.distance_units
        step = state.current_step_index or 1
        total = state.total_steps or 1

        if instruction.is_destination:
            headline = f"{instruction.text} ({step}/{total})"
        else:
            to_turn = instruction.distance_m
            if state.current_location:
                to_turn = distance(state.current_location, instruction.location)
            headline = f"{instruction.text} in {format_distance(to_turn, units)} ({step}/{total})"

        # The arrow always points at the final destination.
        arrow = "?"
        if state.current_location and state.current_route:
            arrow = directional_arrow(bearing(state.current_location, state.current_route.end))

        lines = ["------", headline, arrow, "------"]
        if state.is_navigating:
            lines.append("Navigation Session Active")
        else:
            lines.append('Session Locked - Say "restart session"')
        lines.append("------")
        lines.append("Store sign detected" if self.scene_context.detected else "No store sign detected")
        lines.append("------")
        lines.append(self.scene_context.description)
        lines.append("------")

        extras = []
        if state.is_navigating and state.current_route:
            remaining = self._remaining_distance()
            if self.settings.show_eta:
                extras.append(f"ETA: {format_duration(remaining / self.settings.average_speed_ms, short=True)}")
            if self.settings.show_distance_remaining:
                extras.append(f"{format_distance(remaining, units)} remaining")
            if self.settings.show_speed and state.current_speed:
                extras.append(format_speed(state.current_speed, units))
        if extras:
            lines.append("")
            lines.append(" | ".join(extras))

        return "\n".join(lines)

    def _refresh_display(self) -> None:
        text = self.render_display()
        if text is None:
            logger.debug("Display update skipped: no instruction or session not locked.")
            return
        self._send_to_display(text)

    def _show_message(self, message: str) -> None:
        # Messages stay up while a session is locked; otherwise they time out.
        if self.state.is_navigating or self.state.session_locked:
            self._send_to_display(message)
        else:
            self._send_to_display(message, self.config.message_duration_s)

    def _send_to_display(self, text: str, duration_s: Optional[float] = None) -> None:
        try:
            if duration_s is None:
                self._display.show_text(text)
            else:
                self._display.show_text(text, duration_s=duration_s)
        except Exception:
            # A dropped display link must not stop guidance.
            logger.exception("Display update failed.")

    def _speak(self, text: str) -> None:
        if not self.settings.voice_guidance:
            return
        logger.info(f"[Voice] {text}")
        if not self._voice:
            return
        try:
            self._voice.speak(text)
        except Exception:
            logger.exception("Voice output failed.")
