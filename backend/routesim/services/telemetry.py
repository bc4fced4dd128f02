"""
Telemetry / progress reporting.

Derives progress snapshots (distance, elapsed time, ETA) from a session and
turns successful emissions into sample writes for the persistence queue.
"""

import logging
from typing import Optional

from routesim.models.playback import PlaybackSession, PositionFix
from routesim.models.telemetry import ProgressSnapshot
from routesim.services.persistence import PersistenceQueue
from routesim.utils.geodesy import mps_to_kmh


logger = logging.getLogger(__name__)

MAX_ETA_MS = 7 * 24 * 3600 * 1000  # One week
MIN_PACE = 1e-7                    # meters per millisecond


def estimate_eta_ms(traveled_m: float, total_m: float, elapsed_ms: int) -> Optional[int]:
    """
    Linear ETA extrapolation from average pace so far.

    Returns None when nothing has been traveled yet, no time has passed,
    or the route distance is already covered.
    """
    if traveled_m <= 0 or elapsed_ms <= 0 or total_m <= traveled_m:
        return None
    pace = traveled_m / elapsed_ms
    if pace <= MIN_PACE:
        return None
    eta = int((total_m - traveled_m) / pace)
    return min(eta, MAX_ETA_MS)


class TelemetryReporter:
    """
    Builds progress snapshots and enqueues sample events.

    Sample writes are best-effort; a dropped write never affects playback.
    """

    def __init__(self, queue: Optional[PersistenceQueue] = None):
        self._queue = queue

    def snapshot(self, session: PlaybackSession, wall_now: float) -> ProgressSnapshot:
        elapsed_ms = max(0, int((wall_now - session.started_at) * 1000))
        lat, lng = session.last_position if session.last_position else (None, None)
        return ProgressSnapshot(
            distance_traveled_m=session.distance_traveled,
            total_distance_m=session.total_distance,
            elapsed_ms=elapsed_ms,
            speed_kmh=mps_to_kmh(session.current_segment_speed),
            lat=lat,
            lng=lng,
            eta_ms=estimate_eta_ms(session.distance_traveled, session.total_distance, elapsed_ms),
        )

    def record(self, run_id: str, fix: PositionFix) -> None:
        """Enqueue a sample write for a successfully emitted fix."""
        if self._queue is None:
            return
        self._queue.submit(
            "append_sample",
            run_id,
            timestamp=fix.timestamp,
            lat=fix.lat,
            lng=fix.lng,
            accuracy=fix.accuracy,
            speed=fix.speed,
        )
