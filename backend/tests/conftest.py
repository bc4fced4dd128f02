"""
Shared fixtures: deterministic clocks, sessions and engines.
"""

import numpy as np
import pytest

from routesim.models.playback import PlaybackParams, PlaybackSession
from routesim.models.route import Route
from routesim.services.engine import PlaybackEngine
from routesim.services.persistence import PersistenceQueue
from routesim.services.repository import RunRepository
from routesim.services.sink import RecordingSink
from routesim.utils.geodesy import route_length


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


# ~111.19 m east-west at the equator
EQUATOR_ROUTE = [(0.0, 0.0), (0.0, 0.001)]


def make_session(
    pairs,
    params: PlaybackParams = None,
    speed: float = 10.0,
    now: float = 0.0,
) -> PlaybackSession:
    """Session at constant `speed` m/s (random speed off unless params say so)."""
    route = Route.from_pairs(pairs)
    params = (params or PlaybackParams()).normalized()
    return PlaybackSession(
        run_id="test-run",
        route=route,
        params=params,
        base_speed=speed,
        min_speed=speed,
        max_speed=speed,
        current_segment_speed=speed,
        last_tick=now,
        started_at=now,
        total_distance=route_length(route.points),
    )


def fixed_speed_params(kmh: float = 36.0, **kwargs) -> PlaybackParams:
    """Params giving a constant speed through a degenerate random band."""
    return PlaybackParams(random_speed=True, speed_min_kmh=kmh, speed_max_kmh=kmh, **kwargs)


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def wall_clock():
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def repository():
    return RunRepository()


@pytest.fixture
def queue(repository):
    q = PersistenceQueue(repository, maxsize=256)
    yield q
    q.close()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(sink, queue, clock, wall_clock, rng):
    """Engine without a scheduler thread; tests tick it by hand."""
    eng = PlaybackEngine(
        sink,
        queue,
        rng=rng,
        clock=clock,
        wall_clock=wall_clock,
        drive=False,
    )
    yield eng
    eng.stop()


@pytest.fixture
def step(engine, clock, wall_clock):
    """Advance both clocks and tick the engine once."""
    def _step(seconds: float = 1.0):
        clock.advance(seconds)
        wall_clock.advance(seconds)
        return engine.tick()
    return _step
