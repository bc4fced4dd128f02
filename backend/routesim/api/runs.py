"""
API routes for run history and saved routes.
"""

from fastapi import APIRouter, HTTPException, Query

from routesim.api.playback import build_status_response, params_from_schema
from routesim.api.schemas import (
    PlaySavedRouteRequest,
    PointSchema,
    RunDetailResponse,
    RunSummaryResponse,
    SampleResponse,
    SavedRouteResponse,
    SaveRouteRequest,
    StatusResponse,
)
from routesim.exceptions import InvalidParameters, InvalidRoute
from routesim.models.route import Route
from routesim.models.telemetry import RunRecord, SavedRoute
from routesim.services.engine import get_engine
from routesim.services.repository import get_repository


router = APIRouter(prefix="/runs", tags=["runs"])


def _build_summary_fields(run: RunRecord) -> dict:
    return {
        "id": run.id,
        "route_name": run.route_name,
        "point_count": run.point_count,
        "speed_mode": run.speed_mode,
        "flags": run.flags,
        "started_at": run.started_at_iso,
        "duration_s": run.duration_s,
        "status": run.status.value,
    }


def _build_route_response(saved: SavedRoute) -> SavedRouteResponse:
    return SavedRouteResponse(
        name=saved.name,
        points=[PointSchema(lat=lat, lng=lng) for lat, lng in saved.points],
        distance_m=saved.distance_m,
        created_at=saved.created_at,
        location_summary=saved.location_summary,
    )


@router.get("", response_model=list[RunSummaryResponse])
async def list_runs():
    """
    List all playback runs.

    Returns summaries sorted by start time (newest first).
    """
    repo = get_repository()
    return [RunSummaryResponse(**_build_summary_fields(r)) for r in repo.list_runs()]


@router.get("/{run_id}", response_model=RunDetailResponse)
async def get_run(run_id: str):
    """
    Get a run with statistics over its emitted samples.
    """
    repo = get_repository()
    run = repo.get_run(run_id)

    if run is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")

    return RunDetailResponse(**_build_summary_fields(run), **repo.summarize_run(run_id))


@router.get("/{run_id}/samples", response_model=list[SampleResponse])
async def get_run_samples(
    run_id: str,
    offset: int = Query(0, ge=0, description="Index of the first sample"),
    limit: int = Query(1000, ge=1, le=10000, description="Maximum number of samples"),
):
    """
    Get the emitted samples of a run, oldest first.
    """
    repo = get_repository()
    if repo.get_run(run_id) is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")

    samples = repo.get_samples(run_id)[offset:offset + limit]
    return [
        SampleResponse(
            timestamp=s.timestamp,
            lat=s.lat,
            lng=s.lng,
            accuracy=s.accuracy,
            speed=s.speed,
        )
        for s in samples
    ]


# ============================================================================
# Saved Route Routes
# ============================================================================

routes_router = APIRouter(prefix="/routes", tags=["routes"])


@routes_router.get("", response_model=list[SavedRouteResponse])
async def list_routes():
    """List saved routes, newest first."""
    return [_build_route_response(r) for r in get_repository().list_routes()]


@routes_router.post("", response_model=SavedRouteResponse)
def save_route(request: SaveRouteRequest):
    """
    Save a named route. An existing route with the same name is replaced.
    """
    route = Route.from_pairs((p.lat, p.lng) for p in request.points)
    try:
        saved = get_repository().save_route(request.name, route)
    except InvalidRoute as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _build_route_response(saved)


@routes_router.get("/{name}", response_model=SavedRouteResponse)
async def get_route(name: str):
    """Get a saved route by name."""
    saved = get_repository().get_route(name)
    if saved is None:
        raise HTTPException(status_code=404, detail=f"Route not found: {name}")
    return _build_route_response(saved)


@routes_router.delete("/{name}")
def delete_route(name: str):
    """Delete a saved route."""
    if not get_repository().delete_route(name):
        raise HTTPException(status_code=404, detail=f"Route not found: {name}")
    return {"deleted": name}


@routes_router.post("/{name}/play", response_model=StatusResponse)
def play_route(name: str, request: PlaySavedRouteRequest):
    """Start playback of a saved route."""
    saved = get_repository().get_route(name)
    if saved is None:
        raise HTTPException(status_code=404, detail=f"Route not found: {name}")

    engine = get_engine()
    try:
        engine.start(Route.from_pairs(saved.points), params_from_schema(request), route_name=name)
    except InvalidRoute as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParameters as e:
        raise HTTPException(status_code=422, detail=str(e))

    return build_status_response(engine)
