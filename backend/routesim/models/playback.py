"""
Playback session model.

The session holds all mutable simulation state for one playback of a route.
It is created by a start command, mutated once per tick by the traversal
algorithm, and discarded on stop or completion.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from routesim.exceptions import InvalidParameters
from routesim.models.route import Route, SpeedMode, Waypoint


class PlaybackState(Enum):
    """Lifecycle state of a playback session."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (PlaybackState.COMPLETED, PlaybackState.STOPPED)


class Direction(Enum):
    """Traversal direction along the route."""

    FORWARD = "forward"
    REVERSE = "reverse"

    def flipped(self) -> "Direction":
        return Direction.REVERSE if self is Direction.FORWARD else Direction.FORWARD


@dataclass(frozen=True)
class PlaybackParams:
    """Motion and realism parameters supplied with a start command."""

    speed_mode: SpeedMode = SpeedMode.WALK
    speed_min_kmh: float = 0.0
    speed_max_kmh: float = 0.0
    pause_min_s: float = 0.0
    pause_max_s: float = 0.0
    random_speed: bool = False
    loop: bool = False
    round_trip: bool = False
    drift: bool = False
    bounce: bool = False
    smoothing: bool = False
    drift_meters: float = 0.0
    bounce_meters: float = 0.0
    smoothing_alpha: float = 0.0

    def validate(self) -> "PlaybackParams":
        """
        Reject contradictory mode flags.

        Raises:
            InvalidParameters: loop and round-trip both enabled
        """
        if self.loop and self.round_trip:
            raise InvalidParameters(
                "loop and round_trip are mutually exclusive",
                fields=["loop", "round_trip"],
            )
        return self

    def normalized(self) -> "PlaybackParams":
        """
        Clamp parameters into a playable range.

        - pauses below zero become zero; an inverted pause window has its
          maximum raised to the minimum
        - an inverted speed band has its maximum raised to the minimum
        - smoothing alpha is clamped to [0, 1]
        """
        pause_min = max(self.pause_min_s, 0.0)
        pause_max = max(self.pause_max_s, 0.0)
        if pause_max < pause_min:
            pause_max = pause_min

        speed_min = self.speed_min_kmh
        speed_max = self.speed_max_kmh
        if speed_max < speed_min:
            speed_max = speed_min

        return replace(
            self,
            pause_min_s=pause_min,
            pause_max_s=pause_max,
            speed_min_kmh=speed_min,
            speed_max_kmh=speed_max,
            smoothing_alpha=min(max(self.smoothing_alpha, 0.0), 1.0),
        )

    @property
    def flags(self) -> dict[str, bool]:
        return {
            "random_speed": self.random_speed,
            "loop": self.loop,
            "round_trip": self.round_trip,
            "drift": self.drift,
            "bounce": self.bounce,
            "smoothing": self.smoothing,
        }


@dataclass
class PlaybackSession:
    """
    Live simulation state for one playback.

    Times:
    - last_tick / pause_until: monotonic seconds
    - started_at: wall-clock epoch seconds
    """

    run_id: str
    route: Route
    params: PlaybackParams

    # Speeds (m/s)
    base_speed: float
    min_speed: float
    max_speed: float
    current_segment_speed: float

    last_tick: float
    started_at: float
    total_distance: float

    state: PlaybackState = PlaybackState.RUNNING
    segment_index: int = 0
    distance_into_segment: float = 0.0
    direction: Direction = Direction.FORWARD
    pause_until: Optional[float] = None

    # Realism filter memory
    smoothing_state: Optional[tuple[float, float]] = None
    noise_phase: float = 0.0

    # Progress
    distance_traveled: float = 0.0
    last_position: Optional[tuple[float, float]] = None

    @property
    def is_active(self) -> bool:
        return self.state in (PlaybackState.RUNNING, PlaybackState.PAUSED)

    def next_index(self) -> Optional[int]:
        """Index of the waypoint the current segment heads to, or None at the end."""
        if self.direction is Direction.FORWARD:
            if self.segment_index >= self.route.last_index:
                return None
            return self.segment_index + 1
        if self.segment_index <= 0:
            return None
        return self.segment_index - 1

    def terminal_waypoint(self) -> Waypoint:
        """Waypoint at the end of the route in the current direction."""
        if self.direction is Direction.FORWARD:
            return self.route[self.route.last_index]
        return self.route[0]

    def is_dwelling(self, now: float) -> bool:
        return self.pause_until is not None and self.pause_until > now


@dataclass(frozen=True)
class PositionFix:
    """A synthesized location fix handed to the position sink."""

    lat: float
    lng: float
    accuracy: float
    timestamp: float   # Wall-clock epoch seconds
    speed: float = 0.0  # m/s
