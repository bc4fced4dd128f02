#!/usr/bin/env python3
"""
Standalone smoke test runner for the route playback backend.

Does not require pytest - runs a handful of checks directly.
"""

import sys
import tempfile
import traceback
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

import numpy as np

# Track test results
passed = 0
failed = 0
errors = []


def test(name):
    """Decorator to mark and run a test function."""
    def decorator(func):
        global passed, failed, errors
        try:
            func()
            print(f"  ✓ {name}")
            passed += 1
        except AssertionError as e:
            print(f"  ✗ {name}")
            print(f"    AssertionError: {e}")
            failed += 1
            errors.append((name, str(e)))
        except Exception as e:
            print(f"  ✗ {name}")
            print(f"    {type(e).__name__}: {e}")
            failed += 1
            errors.append((name, traceback.format_exc()))
        return func
    return decorator


def assert_close(a, b, rtol=1e-5, atol=1e-8, msg=""):
    """Assert two values are close."""
    if not np.allclose(a, b, rtol=rtol, atol=atol):
        raise AssertionError(f"{msg}: {a} != {b} (rtol={rtol}, atol={atol})")


class ManualClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now


# ============================================================================
# Geodesy Tests
# ============================================================================

print("\n=== Geodesy Tests ===")

from routesim.models.route import Route, Waypoint
from routesim.utils.geodesy import destination_point, distance_meters, offset


@test("Haversine: one degree latitude ~111km")
def test_haversine():
    dist = distance_meters(Waypoint(32.0, -89.0), Waypoint(33.0, -89.0))
    assert_close(dist, 111195, rtol=0.001, msg="1 degree latitude")


@test("Offset: north changes latitude only")
def test_offset_north():
    d_lat, d_lng = offset(Waypoint(45.0, 7.0), 100.0, 0.0)
    assert d_lat > 0
    assert_close(d_lng, 0.0, atol=1e-12, msg="longitude delta")


@test("Destination point: distance preserved")
def test_destination():
    base = Waypoint(45.0, 7.0)
    dest = destination_point(base, 500.0, 45.0)
    assert_close(distance_meters(base, dest), 500.0, rtol=1e-6, msg="distance")


# ============================================================================
# Playback Tests
# ============================================================================

print("\n=== Playback Tests ===")

from routesim.exceptions import InvalidRoute
from routesim.models.playback import PlaybackParams, PlaybackState
from routesim.services.engine import PlaybackEngine
from routesim.services.sink import RecordingSink


def make_engine(sink):
    clock = ManualClock(100.0)
    engine = PlaybackEngine(
        sink,
        rng=np.random.default_rng(0),
        clock=clock,
        wall_clock=clock,
        drive=False,
    )
    return engine, clock


EQUATOR = Route.from_pairs([(0.0, 0.0), (0.0, 0.001)])
TEN_MPS = PlaybackParams(random_speed=True, speed_min_kmh=36.0, speed_max_kmh=36.0)


@test("Engine: single point route rejected")
def test_single_point():
    engine, _ = make_engine(RecordingSink())
    try:
        engine.start(Route.from_pairs([(0.0, 0.0)]))
    except InvalidRoute:
        return
    raise AssertionError("InvalidRoute not raised")


@test("Engine: 10 m/s for one second moves 10 m")
def test_one_tick():
    sink = RecordingSink()
    engine, clock = make_engine(sink)
    session = engine.start(EQUATOR, TEN_MPS)
    clock.now += 1.0
    engine.tick()
    assert_close(session.distance_traveled, 10.0, msg="distance")
    assert_close(sink.latest.lng, 0.001 * 10.0 / distance_meters(*EQUATOR.points), msg="lng")


@test("Engine: route completes at the last waypoint")
def test_completion():
    sink = RecordingSink()
    engine, clock = make_engine(sink)
    engine.start(EQUATOR, TEN_MPS)
    for _ in range(12):
        clock.now += 1.0
        engine.tick()
    assert engine.state is PlaybackState.COMPLETED
    assert sink.latest.lng == 0.001


@test("Engine: pause freezes position")
def test_pause():
    sink = RecordingSink()
    engine, clock = make_engine(sink)
    session = engine.start(EQUATOR, TEN_MPS)
    engine.toggle_pause()
    clock.now += 5.0
    engine.tick()
    assert session.distance_traveled == 0.0
    assert sink.latest is None


# ============================================================================
# Repository Tests
# ============================================================================

print("\n=== Repository Tests ===")

from routesim.services.repository import RunRepository


@test("Repository: saved route survives reload")
def test_route_reload():
    with tempfile.TemporaryDirectory() as tmp_dir:
        RunRepository(Path(tmp_dir)).save_route("park", EQUATOR)
        saved = RunRepository(Path(tmp_dir)).get_route("park")
        assert saved is not None
        assert saved.points == [(0.0, 0.0), (0.0, 0.001)]


@test("Repository: run summary")
def test_run_summary():
    repo = RunRepository()
    repo.create_run("r", 2, 0, {}, 0.0)
    repo.append_sample("r", 1.0, 0.0, 0.0, 1.0, 2.0)
    repo.append_sample("r", 3.0, 0.0, 0.0, 1.0, 4.0)
    summary = repo.summarize_run("r")
    assert summary["sample_count"] == 2
    assert_close(summary["mean_speed_mps"], 3.0, msg="mean speed")
    assert_close(summary["sample_span_s"], 2.0, msg="span")


# ============================================================================
# Summary
# ============================================================================

print("\n" + "=" * 50)
print(f"RESULTS: {passed} passed, {failed} failed")
print("=" * 50)

if errors:
    print("\nFailures:")
    for name, error in errors:
        print(f"\n--- {name} ---")
        print(error)

sys.exit(0 if failed == 0 else 1)
