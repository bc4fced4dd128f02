"""
Exception classes for route playback.

Nothing here is fatal to the host process: callers either reject a command
(InvalidRoute, InvalidParameters) or log and continue (SinkRejected,
PersistenceFailure).
"""


class PlaybackError(Exception):
    """Base exception for playback errors."""
    pass


class InvalidRoute(PlaybackError, ValueError):
    """Route cannot be played (fewer than two waypoints or bad coordinates)."""
    def __init__(self, message: str, point_count=None):
        super().__init__(message)
        self.point_count = point_count


class InvalidParameters(PlaybackError, ValueError):
    """Start parameters are inconsistent (e.g. loop and round-trip together)."""
    def __init__(self, message: str, fields=None):
        super().__init__(message)
        self.fields = fields or []


class SinkRejected(PlaybackError):
    """Position sink refused a registration or a push."""
    def __init__(self, message: str, fix=None):
        super().__init__(message)
        self.fix = fix


class PersistenceFailure(PlaybackError):
    """A telemetry write could not be stored. Never surfaced to the user."""
    def __init__(self, message: str, run_id=None):
        super().__init__(message)
        self.run_id = run_id
