"""
API schemas (Pydantic models) for request/response validation.
"""

from typing import Optional
from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Command Schemas
# ============================================================================

class PointSchema(BaseModel):
    """A waypoint in decimal degrees."""
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class PlaybackParamsSchema(BaseModel):
    """Motion and realism parameters (speeds in km/h, pauses in seconds)."""
    speed_mode: int = Field(default=0, ge=0, le=2, description="0=walk, 1=jog, 2=drive")
    speed_min_kmh: float = 0.0
    speed_max_kmh: float = 0.0
    pause_min_sec: float = 0.0
    pause_max_sec: float = 0.0
    random_speed: bool = False
    loop: bool = False
    round_trip: bool = False
    drift: bool = False
    bounce: bool = False
    smoothing: bool = False
    drift_meters: float = Field(default=0.0, ge=0.0)
    bounce_meters: float = Field(default=0.0, ge=0.0)
    smoothing_alpha: float = 0.0

    @model_validator(mode="after")
    def check_exclusive_modes(self):
        if self.loop and self.round_trip:
            raise ValueError("loop and round_trip are mutually exclusive")
        return self


class StartRequest(PlaybackParamsSchema):
    """Start playback of an explicit route."""
    points: list[PointSchema]


class PlaySavedRouteRequest(PlaybackParamsSchema):
    """Start playback of a saved route."""
    pass


class TeleportRequest(BaseModel):
    """Jump (or walk) to a target."""
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    walk_mode: bool = False


class SpeedUpdateRequest(BaseModel):
    """Change the speed band of the active session."""
    speed_min_kmh: float = Field(ge=0.0)
    speed_max_kmh: float = Field(ge=0.0)


class NudgeRequest(BaseModel):
    """Move the current position by a distance along a bearing."""
    bearing_deg: float = Field(ge=0.0, lt=360.0)
    meters: float = Field(gt=0.0, le=1000.0)


class SaveRouteRequest(BaseModel):
    """Save a named route."""
    name: str = Field(min_length=1, max_length=120)
    points: list[PointSchema]


# ============================================================================
# Status Schemas
# ============================================================================

class ProgressResponse(BaseModel):
    """Progress snapshot of the current session."""
    distance_traveled_m: float
    total_distance_m: float
    elapsed_ms: int
    speed_kmh: float
    lat: Optional[float] = None
    lng: Optional[float] = None
    eta_ms: Optional[int] = None
    summary: str


class SessionResponse(BaseModel):
    """Traversal state of the active session."""
    run_id: str
    point_count: int
    segment_index: int
    distance_into_segment_m: float
    direction: str
    speed_kmh: float
    dwelling: bool
    flags: dict[str, bool]


class StatusResponse(BaseModel):
    """Engine status."""
    state: str
    status: str
    message: str = ""
    run_id: Optional[str] = None
    session: Optional[SessionResponse] = None
    progress: Optional[ProgressResponse] = None
    last_position: Optional[PointSchema] = None
    sink_error_reported: bool = False


class FixResponse(BaseModel):
    """A fix as seen by the position sink."""
    lat: float
    lng: float
    accuracy: float
    timestamp: float
    speed: float


class EventResponse(BaseModel):
    """A status change or route-updated notification."""
    type: str
    status: Optional[str] = None
    message: str = ""
    points: Optional[list[PointSchema]] = None


class NudgeResponse(BaseModel):
    lat: float
    lng: float


class SpeedUpdateResponse(BaseModel):
    speed_kmh: float


# ============================================================================
# Run History Schemas
# ============================================================================

class RunSummaryResponse(BaseModel):
    """Summary of a run for listing."""
    id: str
    route_name: Optional[str] = None
    point_count: int
    speed_mode: int
    flags: dict[str, bool]
    started_at: str
    duration_s: Optional[float] = None
    status: str


class RunDetailResponse(RunSummaryResponse):
    """Run summary plus sample statistics."""
    sample_count: int
    mean_speed_mps: Optional[float] = None
    max_speed_mps: Optional[float] = None
    sample_span_s: float


class SampleResponse(BaseModel):
    """One emitted coordinate of a run."""
    timestamp: float
    lat: float
    lng: float
    accuracy: float
    speed: float


# ============================================================================
# Saved Route Schemas
# ============================================================================

class SavedRouteResponse(BaseModel):
    """A saved route."""
    name: str
    points: list[PointSchema]
    distance_m: float
    created_at: float
    location_summary: Optional[str] = None
