"""
Route Playback Simulator - FastAPI Backend

Main application entry point and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import numpy as np
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routesim.api.playback import router as playback_router
from routesim.api.runs import router as runs_router, routes_router
from routesim.services.engine import DEFAULT_FIX_ACCURACY, PlaybackEngine, get_engine, init_engine
from routesim.services.persistence import DEFAULT_QUEUE_SIZE, PersistenceQueue
from routesim.services.repository import get_repository, init_repository
from routesim.services.scheduler import DEFAULT_TICK_INTERVAL
from routesim.services.sink import RecordingSink


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Configuration (environment overrides)
DATA_FOLDER_ENV = "ROUTESIM_DATA_FOLDER"
TICK_INTERVAL_ENV = "ROUTESIM_TICK_INTERVAL"
QUEUE_SIZE_ENV = "ROUTESIM_QUEUE_SIZE"
SEED_ENV = "ROUTESIM_SEED"
FIX_ACCURACY_ENV = "ROUTESIM_FIX_ACCURACY"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_seed() -> Optional[int]:
    value = os.getenv(SEED_ENV)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {SEED_ENV}={value!r}")
        return None


def build_engine() -> PlaybackEngine:
    """Create the playback engine from environment configuration."""
    repo = get_repository()
    queue = PersistenceQueue(repo, maxsize=int(_env_float(QUEUE_SIZE_ENV, DEFAULT_QUEUE_SIZE)))
    return PlaybackEngine(
        RecordingSink(),
        queue,
        tick_interval=_env_float(TICK_INTERVAL_ENV, DEFAULT_TICK_INTERVAL),
        fix_accuracy=_env_float(FIX_ACCURACY_ENV, DEFAULT_FIX_ACCURACY),
        rng=np.random.default_rng(_env_seed()),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Route Playback Backend")

    data_folder = os.getenv(DATA_FOLDER_ENV)
    if data_folder:
        path = Path(data_folder)
        path.mkdir(parents=True, exist_ok=True)
        init_repository(path)
        logger.info(f"Initialized repository with folder: {path}")
    else:
        logger.info("No data folder configured; saved routes kept in memory")

    engine = init_engine(build_engine())
    logger.info(f"Tick interval: {engine.scheduler.interval_s}s")

    yield

    # Shutdown
    logger.info("Shutting down Route Playback Backend")
    engine.shutdown()
    get_repository().release()


# Create FastAPI app
app = FastAPI(
    title="Route Playback Simulator",
    description="""
    Backend API for synthesizing a GPS position feed along a route.

    ## Features
    - Play a route at walk/jog/drive or randomized speeds
    - Dwell pauses at waypoints, loop and round-trip playback
    - Realism noise: bounce, drift and smoothing
    - Teleport (jump or walk) to a target
    - Run history with per-fix samples

    ## Control Flow
    1. Start playback via POST /playback/start
    2. Poll GET /playback/status or GET /playback/position
    3. Pause/stop via POST /playback/pause and POST /playback/stop
    4. Inspect history via GET /runs and GET /runs/{id}/samples
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(playback_router)
app.include_router(runs_router)
app.include_router(routes_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "Route Playback Simulator",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    repo = get_repository()
    engine = get_engine()

    return {
        "status": "healthy",
        "data_folder": str(repo.data_folder) if repo.data_folder else None,
        "run_count": repo.run_count,
        "playback_state": engine.state.value,
    }
