"""
Run Repository - stores run history, sample events and saved routes.

Run records and samples live in memory. Saved routes are kept in memory
and, when a data folder is configured, mirrored as JSON files so they
survive a restart.
"""

import hashlib
import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Optional

import pandas as pd

from routesim.exceptions import PersistenceFailure
from routesim.models.route import Route
from routesim.models.telemetry import RunRecord, RunStatus, SampleEvent, SavedRoute
from routesim.utils.geodesy import route_length


logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = ["timestamp", "lat", "lng", "accuracy", "speed"]


class RunRepository:
    """
    Store for playback history.

    All methods are thread-safe; writes normally arrive from the
    persistence worker while reads come from API handlers.
    """

    def __init__(self, data_folder: Optional[Path] = None):
        """
        Initialize the repository.

        Args:
            data_folder: Folder for saved route files. If None, routes are
                kept in memory only.
        """
        self._data_folder: Optional[Path] = data_folder
        self._runs: dict[str, RunRecord] = {}
        self._samples: dict[str, list[SampleEvent]] = {}
        self._routes: dict[str, SavedRoute] = {}
        self._lock = threading.RLock()
        self._released = False

        if data_folder is not None:
            self.scan_folder(data_folder)

    @property
    def data_folder(self) -> Optional[Path]:
        return self._data_folder

    @property
    def run_count(self) -> int:
        with self._lock:
            return len(self._runs)

    # ------------------------------------------------------------------
    # Run history (written through the persistence queue)
    # ------------------------------------------------------------------

    def create_run(
        self,
        run_id: str,
        point_count: int,
        speed_mode: int,
        flags: dict[str, bool],
        started_at: float,
        route_name: Optional[str] = None,
    ) -> str:
        with self._lock:
            self._check_open()
            self._runs[run_id] = RunRecord(
                id=run_id,
                point_count=point_count,
                speed_mode=speed_mode,
                flags=dict(flags),
                started_at=started_at,
                route_name=route_name,
            )
            self._samples[run_id] = []
        logger.debug(f"Created run {run_id} ({point_count} points)")
        return run_id

    def close_run(self, run_id: str, ended_at: float, status: RunStatus) -> None:
        """Close a run. A run is closed once; later calls are ignored."""
        with self._lock:
            self._check_open()
            record = self._get_record(run_id)
            if record.ended_at is not None:
                logger.debug(f"Run {run_id} already closed as {record.status.value}")
                return
            record.ended_at = ended_at
            record.status = status
        logger.info(f"Closed run {run_id}: {status.value}")

    def append_sample(
        self,
        run_id: str,
        timestamp: float,
        lat: float,
        lng: float,
        accuracy: float,
        speed: float,
    ) -> None:
        with self._lock:
            self._check_open()
            self._get_record(run_id)
            self._samples[run_id].append(
                SampleEvent(run_id, timestamp, lat, lng, accuracy, speed)
            )

    def list_runs(self) -> list[RunRecord]:
        """List all runs, newest first."""
        with self._lock:
            runs = list(self._runs.values())
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            return self._runs.get(run_id)

    def get_samples(self, run_id: str) -> list[SampleEvent]:
        with self._lock:
            return list(self._samples.get(run_id, []))

    def samples_frame(self, run_id: str) -> pd.DataFrame:
        """Samples of a run as a DataFrame (one row per emitted fix)."""
        samples = self.get_samples(run_id)
        return pd.DataFrame(
            [[s.timestamp, s.lat, s.lng, s.accuracy, s.speed] for s in samples],
            columns=SAMPLE_COLUMNS,
        )

    def summarize_run(self, run_id: str) -> dict:
        """
        Aggregate statistics over a run's samples.

        Returns:
            Dict with sample_count, mean/max speed (m/s) and the time span
            covered by the samples (seconds)
        """
        df = self.samples_frame(run_id)
        if df.empty:
            return {
                "sample_count": 0,
                "mean_speed_mps": None,
                "max_speed_mps": None,
                "sample_span_s": 0.0,
            }
        return {
            "sample_count": int(len(df)),
            "mean_speed_mps": float(df["speed"].mean()),
            "max_speed_mps": float(df["speed"].max()),
            "sample_span_s": float(df["timestamp"].max() - df["timestamp"].min()),
        }

    # ------------------------------------------------------------------
    # Saved routes
    # ------------------------------------------------------------------

    def scan_folder(self, folder: Path) -> int:
        """
        Load saved route files from a folder.

        Args:
            folder: Data folder (routes live in folder/routes/*.json)

        Returns:
            Number of routes loaded
        """
        routes_dir = folder / "routes"
        if not routes_dir.exists():
            logger.info(f"No saved routes in {folder}")
            return 0

        count = 0
        for route_file in routes_dir.glob("*.json"):
            try:
                data = json.loads(route_file.read_text())
                saved = SavedRoute(
                    name=data["name"],
                    points=[(float(p[0]), float(p[1])) for p in data["points"]],
                    distance_m=float(data.get("distance_m", 0.0)),
                    created_at=float(data.get("created_at", 0.0)),
                    location_summary=data.get("location_summary"),
                )
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"Failed to load route {route_file}: {e}")
                continue
            with self._lock:
                self._routes[saved.name] = saved
            count += 1

        logger.info(f"Loaded {count} saved routes from {routes_dir}")
        return count

    def save_route(self, name: str, route: Route) -> SavedRoute:
        """Save (or replace) a named route."""
        route.validate()
        first = route[0]
        saved = SavedRoute(
            name=name,
            points=[p.as_tuple() for p in route.points],
            distance_m=route_length(route.points),
            created_at=time.time(),
            location_summary=f"{first.lat:.5f}, {first.lng:.5f}",
        )
        with self._lock:
            self._routes[name] = saved
        self._write_route_file(saved)
        logger.info(f"Saved route '{name}' ({len(route)} points, {saved.distance_m:.0f} m)")
        return saved

    def list_routes(self) -> list[SavedRoute]:
        with self._lock:
            routes = list(self._routes.values())
        routes.sort(key=lambda r: (r.created_at, r.name), reverse=True)
        return routes

    def get_route(self, name: str) -> Optional[SavedRoute]:
        with self._lock:
            return self._routes.get(name)

    def delete_route(self, name: str) -> bool:
        with self._lock:
            saved = self._routes.pop(name, None)
        if saved is None:
            return False
        if self._data_folder is not None:
            path = self._route_path(name)
            if path.exists():
                path.unlink()
        return True

    # ------------------------------------------------------------------

    def release(self) -> None:
        """Release the store; further writes fail with PersistenceFailure."""
        with self._lock:
            self._released = True
        logger.info("Run repository released")

    def _check_open(self) -> None:
        if self._released:
            raise PersistenceFailure("Store has been released")

    def _get_record(self, run_id: str) -> RunRecord:
        record = self._runs.get(run_id)
        if record is None:
            raise PersistenceFailure(f"Unknown run: {run_id}", run_id=run_id)
        return record

    def _route_path(self, name: str) -> Path:
        """File for a route name; the name hash keeps similar slugs apart."""
        slug = re.sub(r"[^A-Za-z0-9_.-]+", "_", name).strip("_") or "route"
        digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
        return self._data_folder / "routes" / f"{slug}-{digest}.json"

    def _write_route_file(self, saved: SavedRoute) -> None:
        if self._data_folder is None:
            return
        path = self._route_path(saved.name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({
            "name": saved.name,
            "points": saved.points,
            "distance_m": saved.distance_m,
            "created_at": saved.created_at,
            "location_summary": saved.location_summary,
        }, indent=2))


# Global repository instance (set up by app initialization)
_repository: Optional[RunRepository] = None


def get_repository() -> RunRepository:
    """Get the global repository instance."""
    global _repository
    if _repository is None:
        _repository = RunRepository()
    return _repository


def init_repository(data_folder: Optional[Path] = None) -> RunRepository:
    """Initialize the global repository with a data folder."""
    global _repository
    _repository = RunRepository(data_folder)
    return _repository
