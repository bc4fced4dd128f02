"""
Segment traversal.

Advances a playback session by the wall time elapsed since its previous
tick: converts elapsed time and segment speed into distance, walks that
distance across one or more segments, and handles the end of the route
(round trip, loop or completion).

A tick emits at most one interior coordinate (its final resting position).
Completion handling emits the exact terminal waypoint instead.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from routesim.models.playback import PlaybackSession, PlaybackState
from routesim.services.realism import RealismProcessor
from routesim.utils.geodesy import distance_meters, interpolate


logger = logging.getLogger(__name__)


class TickOutcome(Enum):
    """What a single tick did to the session."""

    IDLE = "idle"                    # No active session
    PAUSED = "paused"                # User pause, time refreshed only
    DWELLING = "dwelling"            # Inside a waypoint dwell window
    CLOCK_ANOMALY = "clock_anomaly"  # Non-positive dt, tick skipped
    MOVED = "moved"                  # Emitted a point inside a segment
    REVERSED = "reversed"            # Reached the end, round trip flipped direction
    LOOPED = "looped"                # Reached the end, loop reset to the start
    COMPLETED = "completed"          # Reached the end, session finished

    @property
    def emitted(self) -> bool:
        return self in _EMITTING


_EMITTING = {
    TickOutcome.MOVED,
    TickOutcome.REVERSED,
    TickOutcome.LOOPED,
    TickOutcome.COMPLETED,
}


@dataclass(frozen=True)
class TickResult:
    """Result of advancing a session by one tick."""

    outcome: TickOutcome
    position: Optional[tuple[float, float]] = None  # Emitted (post-realism)
    raw: Optional[tuple[float, float]] = None       # Interpolated (pre-realism)
    distance_moved: float = 0.0
    boundaries_crossed: int = 0
    dt: float = 0.0


def pick_segment_speed(session: PlaybackSession, rng: np.random.Generator) -> float:
    """
    Sample the speed for the next segment (m/s).

    Without random speed the base speed is used. With random speed the
    speed is drawn uniformly from [min, max]; a non-positive bound falls
    back to the base speed, and a non-positive max disables randomness.
    """
    if not session.params.random_speed:
        return session.base_speed
    if session.max_speed <= 0.0:
        return session.base_speed
    low = session.min_speed if session.min_speed > 0.0 else session.base_speed
    high = session.max_speed if session.max_speed > 0.0 else session.base_speed
    return _random_between(rng, low, high)


def sample_pause(session: PlaybackSession, now: float, rng: np.random.Generator) -> None:
    """Schedule a dwell window after reaching a waypoint, if configured."""
    params = session.params
    if params.pause_max_s <= 0.0:
        return
    duration = _random_between(rng, params.pause_min_s, params.pause_max_s)
    if duration <= 0.0:
        return
    session.pause_until = now + duration
    logger.debug(f"Run {session.run_id}: dwelling {duration:.1f}s at waypoint {session.segment_index}")


def _random_between(rng: np.random.Generator, low: float, high: float) -> float:
    if high <= low:
        return low
    return float(rng.uniform(low, high))


def _cross_boundary(
    session: PlaybackSession,
    next_index: int,
    now: float,
    rng: np.random.Generator,
) -> None:
    session.segment_index = next_index
    session.distance_into_segment = 0.0
    sample_pause(session, now, rng)
    session.current_segment_speed = pick_segment_speed(session, rng)


def advance(
    session: Optional[PlaybackSession],
    now: float,
    realism: RealismProcessor,
    rng: np.random.Generator,
) -> TickResult:
    """
    Advance a session to monotonic time `now`.

    Args:
        session: Session to mutate (None or inactive sessions are ignored)
        now: Monotonic time in seconds
        realism: Post-processor applied to every emitted point
        rng: Random source for pause and speed sampling

    Returns:
        TickResult describing the tick
    """
    if session is None or not session.is_active:
        return TickResult(TickOutcome.IDLE)

    if session.state is PlaybackState.PAUSED:
        session.last_tick = now
        return TickResult(TickOutcome.PAUSED)

    if session.is_dwelling(now):
        session.last_tick = now
        return TickResult(TickOutcome.DWELLING)

    dt = now - session.last_tick
    session.last_tick = now
    if dt <= 0:
        logger.debug(f"Run {session.run_id}: non-positive tick delta {dt:.6f}s, skipped")
        return TickResult(TickOutcome.CLOCK_ANOMALY, dt=dt)

    remaining = session.current_segment_speed * dt
    moved = 0.0
    crossed = 0

    while remaining > 0:
        next_index = session.next_index()
        if next_index is None:
            break

        start = session.route[session.segment_index]
        end = session.route[next_index]
        segment_length = distance_meters(start, end)

        available = segment_length - session.distance_into_segment
        if available <= 0:
            _cross_boundary(session, next_index, now, rng)
            crossed += 1
            continue

        if remaining < available:
            session.distance_into_segment += remaining
            session.distance_traveled += remaining
            moved += remaining
            raw = interpolate(start, end, session.distance_into_segment / segment_length)
            position = realism.apply(session, *raw)
            session.last_position = position
            return TickResult(
                TickOutcome.MOVED,
                position=position,
                raw=raw,
                distance_moved=moved,
                boundaries_crossed=crossed,
                dt=dt,
            )

        remaining -= available
        session.distance_traveled += available
        moved += available
        _cross_boundary(session, next_index, now, rng)
        crossed += 1

    if session.next_index() is not None:
        # Tick distance ran out exactly on an interior waypoint
        raw = session.route[session.segment_index].as_tuple()
        position = realism.apply(session, *raw)
        session.last_position = position
        return TickResult(
            TickOutcome.MOVED,
            position=position,
            raw=raw,
            distance_moved=moved,
            boundaries_crossed=crossed,
            dt=dt,
        )

    return _complete(session, realism, rng, moved, crossed, dt)


def _complete(
    session: PlaybackSession,
    realism: RealismProcessor,
    rng: np.random.Generator,
    moved: float,
    crossed: int,
    dt: float,
) -> TickResult:
    """Emit the terminal waypoint, then flip, loop or finish."""
    terminal = session.terminal_waypoint()
    raw = terminal.as_tuple()
    position = realism.apply(session, *raw)
    session.last_position = position

    if session.params.round_trip:
        session.direction = session.direction.flipped()
        session.distance_into_segment = 0.0
        session.current_segment_speed = pick_segment_speed(session, rng)
        outcome = TickOutcome.REVERSED
    elif session.params.loop:
        session.segment_index = 0
        session.distance_into_segment = 0.0
        session.current_segment_speed = pick_segment_speed(session, rng)
        outcome = TickOutcome.LOOPED
    else:
        session.state = PlaybackState.COMPLETED
        outcome = TickOutcome.COMPLETED

    logger.info(f"Run {session.run_id}: reached end of route ({outcome.value})")

    return TickResult(
        outcome,
        position=position,
        raw=raw,
        distance_moved=moved,
        boundaries_crossed=crossed,
        dt=dt,
    )
