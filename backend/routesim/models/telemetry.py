"""
Telemetry and event data model.

Run records and sample events are the persisted history of a playback;
status events, progress snapshots and route updates are published to
listeners (the control layer) while a session runs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class RunStatus(Enum):
    """Status of a persisted run record."""

    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass
class RunRecord:
    """History row for one playback session."""

    id: str
    point_count: int
    speed_mode: int
    flags: dict[str, bool]
    started_at: float                 # Epoch seconds
    ended_at: Optional[float] = None  # Epoch seconds
    status: RunStatus = RunStatus.RUNNING
    route_name: Optional[str] = None

    @property
    def duration_s(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return max(0.0, self.ended_at - self.started_at)

    @property
    def started_at_iso(self) -> str:
        return datetime.fromtimestamp(self.started_at, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class SampleEvent:
    """One successfully emitted coordinate."""

    run_id: str
    timestamp: float  # Epoch seconds
    lat: float
    lng: float
    accuracy: float   # meters
    speed: float      # m/s


@dataclass
class SavedRoute:
    """A named route kept in the store."""

    name: str
    points: list[tuple[float, float]]
    distance_m: float
    created_at: float
    location_summary: Optional[str] = None


class StatusKind(Enum):
    """Status values published to the control layer."""

    RUNNING = "running"
    PAUSED = "paused"
    IDLE = "idle"
    ERROR = "error"
    TELEPORTED = "teleported"


@dataclass(frozen=True)
class StatusEvent:
    kind: StatusKind
    message: str = ""


@dataclass(frozen=True)
class RouteUpdate:
    """Sent when the engine synthesizes a route on its own (walk-mode teleport)."""

    points: list[tuple[float, float]] = field(default_factory=list)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Progress of the current session at the moment of an emission."""

    distance_traveled_m: float
    total_distance_m: float
    elapsed_ms: int
    speed_kmh: float
    lat: Optional[float]
    lng: Optional[float]
    eta_ms: Optional[int] = None

    def summary(self) -> str:
        """One-line progress text, e.g. '0.12/0.50 km | 00:30/02:05 | 9.0 km/h'."""
        eta = format_duration(self.elapsed_ms + self.eta_ms) if self.eta_ms else "--:--"
        return "%.2f/%.2f km | %s/%s | %.1f km/h" % (
            self.distance_traveled_m / 1000.0,
            self.total_distance_m / 1000.0,
            format_duration(self.elapsed_ms),
            eta,
            self.speed_kmh,
        )


def format_duration(ms: int) -> str:
    """Format milliseconds as MM:SS, or H:MM:SS from one hour up."""
    total_sec = int(ms) // 1000
    minutes = total_sec // 60
    sec = total_sec % 60
    if minutes >= 60:
        return "%d:%02d:%02d" % (minutes // 60, minutes % 60, sec)
    return "%02d:%02d" % (minutes, sec)
