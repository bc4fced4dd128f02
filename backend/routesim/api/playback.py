"""
API routes for playback control and live status.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from routesim.api.schemas import (
    EventResponse,
    FixResponse,
    NudgeRequest,
    NudgeResponse,
    PlaybackParamsSchema,
    PointSchema,
    ProgressResponse,
    SessionResponse,
    SpeedUpdateRequest,
    SpeedUpdateResponse,
    StartRequest,
    StatusResponse,
    TeleportRequest,
)
from routesim.exceptions import InvalidParameters, InvalidRoute
from routesim.models.playback import PlaybackParams
from routesim.models.route import Route, SpeedMode
from routesim.models.telemetry import ProgressSnapshot, RouteUpdate, StatusEvent
from routesim.services.engine import PlaybackEngine, get_engine
from routesim.services.sink import RecordingSink
from routesim.utils.geodesy import mps_to_kmh


router = APIRouter(prefix="/playback", tags=["playback"])


def params_from_schema(request: PlaybackParamsSchema) -> PlaybackParams:
    """Convert request parameters to the engine's PlaybackParams."""
    return PlaybackParams(
        speed_mode=SpeedMode.from_code(request.speed_mode),
        speed_min_kmh=request.speed_min_kmh,
        speed_max_kmh=request.speed_max_kmh,
        pause_min_s=request.pause_min_sec,
        pause_max_s=request.pause_max_sec,
        random_speed=request.random_speed,
        loop=request.loop,
        round_trip=request.round_trip,
        drift=request.drift,
        bounce=request.bounce,
        smoothing=request.smoothing,
        drift_meters=request.drift_meters,
        bounce_meters=request.bounce_meters,
        smoothing_alpha=request.smoothing_alpha,
    )


def _build_progress_response(progress: Optional[ProgressSnapshot]) -> Optional[ProgressResponse]:
    if progress is None:
        return None
    return ProgressResponse(
        distance_traveled_m=progress.distance_traveled_m,
        total_distance_m=progress.total_distance_m,
        elapsed_ms=progress.elapsed_ms,
        speed_kmh=progress.speed_kmh,
        lat=progress.lat,
        lng=progress.lng,
        eta_ms=progress.eta_ms,
        summary=progress.summary(),
    )


def build_status_response(engine: PlaybackEngine) -> StatusResponse:
    """Build status response from the engine's current state."""
    session = engine.session
    session_response = None
    if session is not None:
        session_response = SessionResponse(
            run_id=session.run_id,
            point_count=len(session.route),
            segment_index=session.segment_index,
            distance_into_segment_m=session.distance_into_segment,
            direction=session.direction.value,
            speed_kmh=mps_to_kmh(session.current_segment_speed),
            dwelling=session.pause_until is not None and session.pause_until > session.last_tick,
            flags=session.params.flags,
        )

    last = engine.last_known_position
    return StatusResponse(
        state=engine.state.value,
        status=engine.last_status.kind.value,
        message=engine.last_status.message,
        run_id=engine.run_id,
        session=session_response,
        progress=_build_progress_response(engine.last_progress),
        last_position=PointSchema(lat=last[0], lng=last[1]) if last else None,
        sink_error_reported=engine.sink_error_reported,
    )


@router.post("/start", response_model=StatusResponse)
def start_playback(request: StartRequest):
    """
    Start playing a route.

    Any active playback is stopped first. Speeds are in km/h, pauses
    (dwell at each waypoint) in seconds.
    """
    engine = get_engine()
    route = Route.from_pairs((p.lat, p.lng) for p in request.points)

    try:
        engine.start(route, params_from_schema(request))
    except InvalidRoute as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParameters as e:
        raise HTTPException(status_code=422, detail=str(e))

    return build_status_response(engine)


@router.post("/pause", response_model=StatusResponse)
def toggle_pause():
    """Pause or resume the active playback."""
    engine = get_engine()
    engine.toggle_pause()
    return build_status_response(engine)


@router.post("/stop", response_model=StatusResponse)
def stop_playback():
    """Stop the active playback."""
    engine = get_engine()
    engine.stop()
    return build_status_response(engine)


@router.post("/teleport", response_model=StatusResponse)
def teleport(request: TeleportRequest):
    """
    Jump to a location, or walk there from the last known position.
    """
    engine = get_engine()
    try:
        engine.teleport(request.lat, request.lng, walk_mode=request.walk_mode)
    except (InvalidRoute, InvalidParameters) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return build_status_response(engine)


@router.post("/speed", response_model=SpeedUpdateResponse)
def update_speed(request: SpeedUpdateRequest):
    """Change the speed band of the active playback."""
    engine = get_engine()
    speed = engine.update_speed(request.speed_min_kmh, request.speed_max_kmh)
    if speed is None:
        raise HTTPException(status_code=409, detail="No active playback")
    return SpeedUpdateResponse(speed_kmh=mps_to_kmh(speed))


@router.post("/nudge", response_model=NudgeResponse)
def nudge(request: NudgeRequest):
    """Move the current position by a distance along a bearing."""
    engine = get_engine()
    try:
        lat, lng = engine.nudge(request.bearing_deg, request.meters)
    except InvalidParameters as e:
        raise HTTPException(status_code=409, detail=str(e))
    return NudgeResponse(lat=lat, lng=lng)


@router.get("/status", response_model=StatusResponse)
async def get_status():
    """Current engine state, session and progress."""
    return build_status_response(get_engine())


@router.get("/progress", response_model=Optional[ProgressResponse])
async def get_progress():
    """Latest progress snapshot (null before the first emission)."""
    return _build_progress_response(get_engine().last_progress)


@router.get("/position", response_model=list[FixResponse])
async def get_positions(
    limit: int = Query(20, ge=1, le=256, description="Number of most recent fixes"),
):
    """
    Most recent fixes pushed to the position sink.
    """
    sink = get_engine().sink
    if not isinstance(sink, RecordingSink):
        return []
    return [
        FixResponse(
            lat=f.lat,
            lng=f.lng,
            accuracy=f.accuracy,
            timestamp=f.timestamp,
            speed=f.speed,
        )
        for f in sink.recent(limit)
    ]


@router.get("/events", response_model=list[EventResponse])
async def get_events(
    limit: int = Query(20, ge=1, le=100, description="Number of most recent events"),
):
    """Recent status changes and route-updated notifications."""
    events = []
    for event in get_engine().recent_events(limit):
        if isinstance(event, StatusEvent):
            events.append(EventResponse(
                type="status",
                status=event.kind.value,
                message=event.message,
            ))
        elif isinstance(event, RouteUpdate):
            events.append(EventResponse(
                type="route",
                points=[PointSchema(lat=lat, lng=lng) for lat, lng in event.points],
            ))
    return events
