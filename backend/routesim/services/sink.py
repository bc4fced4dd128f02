"""
Position sinks.

A sink receives synthesized fixes and makes them visible to consumers as
if they were live GPS fixes. Sinks may refuse a push by raising
SinkRejected; the engine reports that once and keeps simulating.
"""

import logging
import threading
from collections import deque
from typing import Optional, Protocol

from routesim.exceptions import SinkRejected
from routesim.models.playback import PositionFix


logger = logging.getLogger(__name__)


class PositionSink(Protocol):
    """Sink interface for synthesized fixes."""

    name: str

    def push(self, fix: PositionFix) -> None:
        ...


class RecordingSink:
    """
    Keeps the most recent fixes in memory.

    Serves as the live location feed for the HTTP API.
    """

    name = "recording"

    def __init__(self, capacity: int = 256):
        self._fixes: deque[PositionFix] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def push(self, fix: PositionFix) -> None:
        with self._lock:
            self._fixes.append(fix)
        logger.debug(f"Pushed fix ({fix.lat:.6f}, {fix.lng:.6f})")

    @property
    def latest(self) -> Optional[PositionFix]:
        with self._lock:
            return self._fixes[-1] if self._fixes else None

    def recent(self, limit: int = 50) -> list[PositionFix]:
        with self._lock:
            fixes = list(self._fixes)
        return fixes[-limit:] if limit > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._fixes.clear()


class RejectingSink:
    """Sink that refuses every push, like a provider without mock permission."""

    name = "rejecting"

    def __init__(self, reason: str = "Position sink refused registration"):
        self.reason = reason
        self.attempts = 0

    def push(self, fix: PositionFix) -> None:
        self.attempts += 1
        raise SinkRejected(self.reason, fix=fix)
