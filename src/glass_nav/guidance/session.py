# session.py
# Per-user navigation sessions and the registry that owns them.
# Each session serializes all of its work on one SessionWorker thread;
# different sessions run in parallel.

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Sequence, Tuple

from .events import Listener
from .models import LocationUpdate, NavigationEventType, NavigationState, NavPhase, ProgressResult
from .nav_config import NavConfig, NavigationSettings
from .navigation_manager import Destination, NavigationManager
from .providers import DisplaySink, Geocoder, LocationSource, RouteProvider, SceneContextProvider, VoiceSink
from .scheduler import SessionWorker, ThreadedScheduler

logger = logging.getLogger(__name__)


@dataclass
class SessionServices:
    """Collaborators wired into one user's session."""
    route_provider: RouteProvider
    geocoder: Geocoder
    location_source: LocationSource
    display: DisplaySink
    voice: Optional[VoiceSink] = None
    scene_provider: Optional[SceneContextProvider] = None


class NavigationSession:
    """
    Thread-safe facade over one NavigationManager.

    Every call is queued on the session worker and the caller blocks for the
    result, so commands, GPS fixes and timer firings never interleave.

    Args:
        user_id:  Owner of the session.
        services: Collaborators for this user.
        executor: Pool for provider calls (shared by the registry).
        settings: Initial user preferences.
        config:   Engine config.
    """

    def __init__(
        self,
        user_id: str,
        services: SessionServices,
        executor: ThreadPoolExecutor,
        settings: Optional[NavigationSettings] = None,
        config: Optional[NavConfig] = None,
    ) -> None:
        self.user_id = user_id
        self._worker = SessionWorker(name=f"nav-session-{user_id}")
        self._scheduler = ThreadedScheduler(self._worker, executor)
        self._closed = False
        self.manager = NavigationManager(
            route_provider=services.route_provider,
            geocoder=services.geocoder,
            location_source=services.location_source,
            display=services.display,
            voice=services.voice,
            scene_provider=services.scene_provider,
            scheduler=self._scheduler,
            settings=settings,
            config=config,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def _call(self, fn: Callable, *args, **kwargs):
        return self._worker.submit(fn, *args, **kwargs).result()

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    def start_navigation(self, destination: Destination,
                         waypoints: Optional[Sequence[Destination]] = None) -> Tuple[bool, str]:
        return self._call(self.manager.start_navigation, destination, waypoints)

    def stop_navigation(self) -> None:
        self._call(self.manager.stop_navigation)

    def restart_session(self) -> None:
        self._call(self.manager.restart_session)

    def add_waypoint(self, point: Destination) -> bool:
        return self._call(self.manager.add_waypoint, point)

    def on_location_update(self, update: LocationUpdate) -> ProgressResult:
        return self._call(self.manager.on_location_update, update)

    def update_settings(self, **partial) -> None:
        self._call(self.manager.update_settings, **partial)

    def get_navigation_status(self) -> str:
        return self._call(self.manager.get_navigation_status)

    def is_session_locked(self) -> bool:
        return self._call(self.manager.is_session_locked)

    def phase(self) -> NavPhase:
        return self._call(lambda: self.manager.phase)

    def snapshot(self) -> NavigationState:
        """Copy of the current state, taken on the session thread."""
        return self._call(lambda: replace(self.manager.state))

    def subscribe(self, event_type: NavigationEventType, listener: Listener) -> Callable[[], None]:
        """Listeners run on the session thread; keep them short."""
        dispose = self._call(self.manager.events.subscribe, event_type, listener)

        def dispose_on_worker() -> None:
            if not self._closed:
                self._call(dispose)

        return dispose_on_worker

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop timers, release the GPS stream and the worker. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._call(self.manager.shutdown)
        except Exception:
            logger.exception(f"Error shutting down session for {self.user_id}.")
        self._scheduler.shutdown()
        self._worker.close()
        logger.info(f"Session for {self.user_id} closed.")


class SessionRegistry:
    """
    Explicit owner of every live session: created on connect, destroyed on disconnect.

    Args:
        services_factory: Builds the collaborators for a user id.
        config:           Engine config shared by all sessions.
        max_workers:      Size of the shared provider-call pool.
    """

    def __init__(
        self,
        services_factory: Callable[[str], SessionServices],
        config: Optional[NavConfig] = None,
        max_workers: int = 4,
    ) -> None:
        self._services_factory = services_factory
        self.config = config or NavConfig()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="nav-provider")
        self._sessions: Dict[str, NavigationSession] = {}
        self._lock = threading.Lock()

    def create(self, user_id: str, settings: Optional[NavigationSettings] = None) -> NavigationSession:
        """New session for `user_id`; an existing one is closed and replaced."""
        session = NavigationSession(
            user_id, self._services_factory(user_id), self._executor,
            settings=settings, config=self.config,
        )
        with self._lock:
            previous = self._sessions.get(user_id)
            self._sessions[user_id] = session
        if previous:
            logger.info(f"Replacing existing session for {user_id}.")
            previous.close()
        logger.info(f"Navigation session started for {user_id} ({len(self)} active).")
        return session

    def get(self, user_id: str) -> Optional[NavigationSession]:
        with self._lock:
            return self._sessions.get(user_id)

    def destroy(self, user_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.close()
        return True

    def destroy_all(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            session.close()
        self._executor.shutdown(wait=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._sessions
