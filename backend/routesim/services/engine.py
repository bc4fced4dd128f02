"""
Playback engine.

Owns the single live PlaybackSession and everything around it: command
handlers (start / pause / stop / teleport / speed / nudge), the tick
scheduler, the position sink, the telemetry reporter and the persistence
queue. Commands and ticks are serialized by one lock, so the session only
ever has one writer at a time.
"""

import logging
import threading
import time
import uuid
from collections import deque
from typing import Any, Callable, Optional

import numpy as np

from routesim.exceptions import InvalidParameters, SinkRejected
from routesim.models.playback import (
    PlaybackParams,
    PlaybackSession,
    PlaybackState,
    PositionFix,
)
from routesim.models.route import Route, SpeedMode, Waypoint
from routesim.models.telemetry import (
    ProgressSnapshot,
    RouteUpdate,
    RunStatus,
    StatusEvent,
    StatusKind,
)
from routesim.services.persistence import PersistenceQueue
from routesim.services.realism import RealismProcessor
from routesim.services.scheduler import DEFAULT_TICK_INTERVAL, TickScheduler
from routesim.services.repository import get_repository
from routesim.services.sink import PositionSink, RecordingSink
from routesim.services.telemetry import TelemetryReporter
from routesim.services.traversal import (
    TickOutcome,
    TickResult,
    advance,
    pick_segment_speed,
)
from routesim.utils.geodesy import destination_point, kmh_to_mps, mps_to_kmh, route_length


logger = logging.getLogger(__name__)

DEFAULT_FIX_ACCURACY = 1.0  # meters
EVENT_HISTORY = 100

Listener = Callable[[Any], None]


class PlaybackEngine:
    """
    Route playback and location synthesis engine.

    Args:
        sink: Receives every emitted fix
        queue: Persistence queue for run records and samples (optional)
        tick_interval: Scheduler cadence in seconds
        fix_accuracy: Accuracy (meters) reported with each fix
        rng: Random generator for speed, pause and drift sampling
        clock: Monotonic time source (seconds)
        wall_clock: Wall-clock time source (epoch seconds)
        drive: If False, no scheduler thread is created and the caller
            advances the engine with tick()
    """

    def __init__(
        self,
        sink: PositionSink,
        queue: Optional[PersistenceQueue] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        fix_accuracy: float = DEFAULT_FIX_ACCURACY,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        drive: bool = True,
    ):
        self._sink = sink
        self._queue = queue
        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock
        self._wall_clock = wall_clock
        self._fix_accuracy = fix_accuracy

        self._realism = RealismProcessor(self._rng)
        self._reporter = TelemetryReporter(queue)
        self._scheduler = TickScheduler(self._on_tick, tick_interval) if drive else None

        self._lock = threading.RLock()
        self._session: Optional[PlaybackSession] = None
        self._final_state = PlaybackState.IDLE
        self._last_run_id: Optional[str] = None
        self._last_known: Optional[tuple[float, float]] = None
        self._sink_error_reported = False

        self._listeners: list[Listener] = []
        self._events: deque = deque(maxlen=EVENT_HISTORY)
        self.last_status = StatusEvent(StatusKind.IDLE)
        self.last_progress: Optional[ProgressSnapshot] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            if self._session is not None:
                return self._session.state
            return self._final_state

    @property
    def run_id(self) -> Optional[str]:
        with self._lock:
            if self._session is not None:
                return self._session.run_id
            return self._last_run_id

    @property
    def last_known_position(self) -> Optional[tuple[float, float]]:
        return self._last_known

    @property
    def sink(self) -> PositionSink:
        return self._sink

    @property
    def scheduler(self) -> Optional[TickScheduler]:
        return self._scheduler

    @property
    def sink_error_reported(self) -> bool:
        return self._sink_error_reported

    def recent_events(self, limit: int = 20) -> list:
        with self._lock:
            events = list(self._events)
        return events[-limit:] if limit > 0 else []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(
        self,
        route: Route,
        params: Optional[PlaybackParams] = None,
        route_name: Optional[str] = None,
        message: str = "",
    ) -> PlaybackSession:
        """
        Start a fresh playback session.

        Any live session is closed as stopped first.

        Raises:
            InvalidRoute: fewer than two waypoints (no run record is created)
            InvalidParameters: loop and round-trip both enabled
        """
        route.validate()
        params = (params or PlaybackParams()).validate().normalized()

        with self._lock:
            if self._session is not None and self._session.is_active:
                logger.info(f"Replacing active run {self._session.run_id}")
                self._end_session(RunStatus.STOPPED)

            base_speed = params.speed_mode.base_speed_mps
            session = PlaybackSession(
                run_id=uuid.uuid4().hex[:16],
                route=route,
                params=params,
                base_speed=base_speed,
                min_speed=kmh_to_mps(params.speed_min_kmh),
                max_speed=kmh_to_mps(params.speed_max_kmh),
                current_segment_speed=base_speed,
                last_tick=self._clock(),
                started_at=self._wall_clock(),
                total_distance=route_length(route.points),
            )
            session.current_segment_speed = pick_segment_speed(session, self._rng)
            self._session = session
            self._last_run_id = session.run_id

            if self._queue is not None:
                self._queue.submit(
                    "create_run",
                    session.run_id,
                    point_count=len(route),
                    speed_mode=params.speed_mode.value,
                    flags=params.flags,
                    started_at=session.started_at,
                    route_name=route_name,
                )

            logger.info(
                f"Started run {session.run_id}: {len(route)} points, "
                f"{session.total_distance:.0f} m, {session.current_segment_speed:.2f} m/s"
            )
            self._publish(StatusEvent(StatusKind.RUNNING, message))

        if self._scheduler is not None:
            self._scheduler.start()
        return session

    def toggle_pause(self) -> PlaybackState:
        """Flip between running and paused. No-op without an active session."""
        with self._lock:
            session = self._session
            if session is None or not session.is_active:
                return self.state

            if session.state is PlaybackState.RUNNING:
                session.state = PlaybackState.PAUSED
                self._publish(StatusEvent(StatusKind.PAUSED))
            else:
                session.state = PlaybackState.RUNNING
                session.last_tick = self._clock()
                self._publish(StatusEvent(StatusKind.RUNNING))

            logger.info(f"Run {session.run_id} {session.state.value}")
            return session.state

    def stop(self) -> PlaybackState:
        """Stop the active session, if any, and halt the scheduler."""
        with self._lock:
            if self._session is not None and self._session.is_active:
                logger.info(f"Stopping run {self._session.run_id}")
                self._end_session(RunStatus.STOPPED)
                self._publish(StatusEvent(StatusKind.IDLE))
            state = self.state

        if self._scheduler is not None:
            self._scheduler.stop()
        return state

    def teleport(self, lat: float, lng: float, walk_mode: bool = False) -> Optional[PlaybackSession]:
        """
        Jump or walk to a target.

        Without walk mode a single fix is pushed at the target and any
        ongoing session is left untouched. With walk mode a two-point route
        from the last known position (or the target itself) is started at
        walking speed.

        Returns:
            The new session in walk mode, otherwise None
        """
        target = _checked_waypoint(lat, lng)

        if not walk_mode:
            with self._lock:
                self._push_side_channel(target)
                self._publish(StatusEvent(StatusKind.TELEPORTED, f"Jumped to {lat}, {lng}"))
            return None

        with self._lock:
            origin = Waypoint(*self._last_known) if self._last_known else target
            route = Route((origin, target))
            self._publish(RouteUpdate([p.as_tuple() for p in route.points]))
            return self.start(
                route,
                PlaybackParams(speed_mode=SpeedMode.WALK),
                message=f"Walking to {lat}, {lng}",
            )

    def update_speed(self, speed_min_kmh: float, speed_max_kmh: float) -> Optional[float]:
        """
        Change the speed band of the active session.

        The base speed becomes the band midpoint and the current segment
        speed is resampled immediately.

        Returns:
            New segment speed (m/s), or None without an active session
        """
        with self._lock:
            session = self._session
            if session is None or not session.is_active:
                return None
            session.min_speed = kmh_to_mps(speed_min_kmh)
            session.max_speed = max(kmh_to_mps(speed_max_kmh), session.min_speed)
            session.base_speed = (session.min_speed + session.max_speed) / 2.0
            session.current_segment_speed = pick_segment_speed(session, self._rng)
            logger.info(
                f"Run {session.run_id}: speed updated, base {mps_to_kmh(session.base_speed):.1f} km/h"
            )
            return session.current_segment_speed

    def nudge(self, bearing_degrees: float, meters: float) -> tuple[float, float]:
        """
        Move the last known position by a great-circle displacement.

        Raises:
            InvalidParameters: no position has been emitted yet
        """
        with self._lock:
            if self._last_known is None:
                raise InvalidParameters("No known position to move from", fields=["position"])
            moved = destination_point(Waypoint(*self._last_known), meters, bearing_degrees)
            self._push_side_channel(moved)
            self._publish(
                StatusEvent(StatusKind.TELEPORTED, f"Moved to {moved.lat:.6f}, {moved.lng:.6f}")
            )
            return moved.as_tuple()

    def shutdown(self) -> None:
        """Service teardown: stop playback and drain the persistence queue."""
        self.stop()
        if self._queue is not None:
            self._queue.close()
        logger.info("Playback engine shut down")

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    def tick(self) -> TickResult:
        """Advance the active session once and emit the result."""
        with self._lock:
            session = self._session
            result = advance(session, self._clock(), self._realism, self._rng)

            if result.outcome.emitted:
                self._emit(session, result.position)

            if result.outcome is TickOutcome.COMPLETED:
                self._end_session(RunStatus.COMPLETED)
                self._publish(StatusEvent(StatusKind.IDLE, "Route completed"))

            return result

    def _on_tick(self) -> bool:
        self.tick()
        with self._lock:
            return self._session is not None and self._session.is_active

    # ------------------------------------------------------------------
    # Internals (called with the lock held)
    # ------------------------------------------------------------------

    def _end_session(self, status: RunStatus) -> None:
        session = self._session
        if session is None:
            return
        session.state = (
            PlaybackState.COMPLETED if status is RunStatus.COMPLETED else PlaybackState.STOPPED
        )
        if self._queue is not None:
            self._queue.submit(
                "close_run",
                session.run_id,
                ended_at=self._wall_clock(),
                status=status,
            )
        self._final_state = session.state
        self._session = None

    def _emit(self, session: PlaybackSession, position: tuple[float, float]) -> None:
        fix = PositionFix(
            lat=position[0],
            lng=position[1],
            accuracy=self._fix_accuracy,
            timestamp=self._wall_clock(),
            speed=session.current_segment_speed,
        )
        self._last_known = position
        if self._push(fix):
            self._reporter.record(session.run_id, fix)
        self._publish(self._reporter.snapshot(session, self._wall_clock()))

    def _push_side_channel(self, point: Waypoint) -> None:
        fix = PositionFix(
            lat=point.lat,
            lng=point.lng,
            accuracy=self._fix_accuracy,
            timestamp=self._wall_clock(),
        )
        self._last_known = point.as_tuple()
        self._push(fix)

    def _push(self, fix: PositionFix) -> bool:
        try:
            self._sink.push(fix)
        except SinkRejected as e:
            self._report_sink_error(str(e))
            return False
        except Exception as e:
            # Sinks are never fatal; treat a crash like a rejection
            self._report_sink_error(f"{type(e).__name__}: {e}")
            return False
        return True

    def _report_sink_error(self, message: str) -> None:
        if self._sink_error_reported:
            logger.debug(f"Position sink rejected fix: {message}")
            return
        self._sink_error_reported = True
        logger.warning(f"Position sink rejected fix: {message}")
        self._publish(StatusEvent(StatusKind.ERROR, message))

    def _publish(self, event: Any) -> None:
        if isinstance(event, StatusEvent):
            self.last_status = event
        elif isinstance(event, ProgressSnapshot):
            self.last_progress = event
        if not isinstance(event, ProgressSnapshot):
            self._events.append(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Playback listener failed")


def _checked_waypoint(lat: float, lng: float) -> Waypoint:
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise InvalidParameters(f"Target out of range: {lat}, {lng}", fields=["lat", "lng"])
    return Waypoint(float(lat), float(lng))


# Global engine instance (set up by app initialization)
_engine: Optional[PlaybackEngine] = None


def get_engine() -> PlaybackEngine:
    """Get the global engine instance."""
    global _engine
    if _engine is None:
        _engine = PlaybackEngine(RecordingSink(), PersistenceQueue(get_repository()))
    return _engine


def init_engine(engine: PlaybackEngine) -> PlaybackEngine:
    """Install the global engine, shutting down any previous one."""
    global _engine
    if _engine is not None and _engine is not engine:
        _engine.shutdown()
    _engine = engine
    return _engine
