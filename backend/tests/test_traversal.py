"""
Tests for segment traversal.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from routesim.models.playback import Direction, PlaybackParams, PlaybackState
from routesim.models.route import Waypoint
from routesim.services.realism import RealismProcessor
from routesim.services.traversal import (
    TickOutcome,
    advance,
    pick_segment_speed,
    sample_pause,
)
from routesim.utils.geodesy import distance_meters

from conftest import EQUATOR_ROUTE, make_session


EQUATOR_LENGTH = distance_meters(Waypoint(0.0, 0.0), Waypoint(0.0, 0.001))


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def realism(rng):
    return RealismProcessor(rng)


def run_ticks(session, realism, rng, count, dt=1.0):
    results = []
    now = session.last_tick
    for _ in range(count):
        now += dt
        results.append(advance(session, now, realism, rng))
    return results


class TestSingleTick:

    def test_ten_meters_along_equator(self, realism, rng):
        """10 m/s for one second moves ~10 m and interpolates at 10/111."""
        session = make_session(EQUATOR_ROUTE, speed=10.0)

        result = advance(session, 1.0, realism, rng)

        assert result.outcome is TickOutcome.MOVED
        assert_allclose(session.distance_into_segment, 10.0)
        assert_allclose(session.distance_traveled, 10.0)
        assert_allclose(result.raw[0], 0.0)
        assert_allclose(result.raw[1], 0.001 * 10.0 / EQUATOR_LENGTH, rtol=1e-9)
        assert result.position == result.raw
        assert session.last_position == result.position

    def test_idle_without_session(self, realism, rng):
        assert advance(None, 1.0, realism, rng).outcome is TickOutcome.IDLE

    def test_user_pause_freezes_position(self, realism, rng):
        session = make_session(EQUATOR_ROUTE)
        session.state = PlaybackState.PAUSED

        result = advance(session, 5.0, realism, rng)

        assert result.outcome is TickOutcome.PAUSED
        assert session.last_tick == 5.0
        assert session.distance_into_segment == 0.0
        assert result.position is None

    @pytest.mark.parametrize("now", [0.0, -1.0])
    def test_clock_anomaly_skips_tick(self, realism, rng, now):
        session = make_session(EQUATOR_ROUTE)

        result = advance(session, now, realism, rng)

        assert result.outcome is TickOutcome.CLOCK_ANOMALY
        assert session.distance_into_segment == 0.0
        assert session.distance_traveled == 0.0


class TestSegmentCrossing:

    def test_zero_length_segment_is_skipped(self, realism, rng):
        session = make_session([(0.0, 0.0), (0.0, 0.0), (0.0, 0.001)], speed=10.0)

        result = advance(session, 1.0, realism, rng)

        assert result.outcome is TickOutcome.MOVED
        assert result.boundaries_crossed == 1
        assert session.segment_index == 1
        assert_allclose(session.distance_into_segment, 10.0)

    def test_multiple_segments_in_one_tick(self, realism, rng):
        pairs = [(0.0, 0.0), (0.0, 0.0001), (0.0, 0.0002), (0.0, 0.0003)]
        session = make_session(pairs, speed=30.0)
        short = EQUATOR_LENGTH / 10.0

        result = advance(session, 1.0, realism, rng)

        assert result.outcome is TickOutcome.MOVED
        assert result.boundaries_crossed == 2
        assert session.segment_index == 2
        assert_allclose(session.distance_into_segment, 30.0 - 2 * short, rtol=1e-6)
        assert_allclose(result.distance_moved, 30.0)

    def test_exact_landing_on_interior_waypoint(self, realism, rng):
        """Running out of distance on a waypoint emits that waypoint, not completion."""
        pairs = [(0.0, 0.0), (0.0, 0.0001), (0.0, 0.001)]
        session = make_session(pairs, speed=10.0)
        session.current_segment_speed = distance_meters(Waypoint(0.0, 0.0), Waypoint(0.0, 0.0001))

        result = advance(session, 1.0, realism, rng)

        assert result.outcome is TickOutcome.MOVED
        assert result.raw == (0.0, 0.0001)
        assert session.segment_index == 1
        assert session.state is PlaybackState.RUNNING

    def test_distance_into_segment_stays_bounded(self, realism):
        pairs = [(0.0, 0.0), (0.0, 0.0003), (0.0002, 0.0003), (0.0002, 0.0011), (0.0, 0.0011)]
        session = make_session(pairs, PlaybackParams(loop=True), speed=7.0)
        tick_rng = np.random.default_rng(3)
        now = 0.0

        for _ in range(200):
            now += float(tick_rng.uniform(0.2, 3.0))
            advance(session, now, realism, tick_rng)
            nxt = session.next_index()
            assert nxt is not None
            length = distance_meters(session.route[session.segment_index], session.route[nxt])
            assert 0.0 <= session.distance_into_segment <= length

    def test_interior_points_inside_segment_hull(self, realism, rng):
        pairs = [(0.0, 0.0), (0.0003, 0.0004), (0.0001, 0.0009), (0.0005, 0.0012)]
        session = make_session(pairs, speed=9.0)

        for now in range(1, 40):
            result = advance(session, float(now), realism, rng)
            if result.outcome is not TickOutcome.MOVED:
                continue
            a = session.route[session.segment_index]
            b = session.route[session.next_index()]
            lat, lng = result.raw
            assert min(a.lat, b.lat) - 1e-12 <= lat <= max(a.lat, b.lat) + 1e-12
            assert min(a.lng, b.lng) - 1e-12 <= lng <= max(a.lng, b.lng) + 1e-12


class TestCompletion:

    def test_travel_time_matches_route_length(self, realism, rng):
        pairs = [(0.0, 0.0), (0.0, 0.001), (0.001, 0.001)]
        session = make_session(pairs, speed=10.0)
        expected_s = session.total_distance / 10.0

        ticks = 0
        while session.state is PlaybackState.RUNNING:
            ticks += 1
            advance(session, float(ticks), realism, rng)
            assert ticks < 1000

        assert session.state is PlaybackState.COMPLETED
        assert abs(ticks - expected_s) <= 1.0
        assert_allclose(session.distance_traveled, session.total_distance, rtol=1e-9)

    def test_completion_emits_terminal_waypoint(self, realism, rng):
        session = make_session(EQUATOR_ROUTE, speed=50.0)

        results = run_ticks(session, realism, rng, 3)

        assert [r.outcome for r in results] == [
            TickOutcome.MOVED, TickOutcome.MOVED, TickOutcome.COMPLETED,
        ]
        assert results[-1].position == (0.0, 0.001)
        assert session.state is PlaybackState.COMPLETED

    def test_completed_session_is_inert(self, realism, rng):
        session = make_session(EQUATOR_ROUTE, speed=500.0)
        run_ticks(session, realism, rng, 1)

        assert advance(session, 10.0, realism, rng).outcome is TickOutcome.IDLE

    def test_round_trip_flips_direction(self, realism, rng):
        session = make_session(EQUATOR_ROUTE, PlaybackParams(round_trip=True), speed=50.0)

        results = run_ticks(session, realism, rng, 3)

        assert results[-1].outcome is TickOutcome.REVERSED
        assert results[-1].position == (0.0, 0.001)
        assert session.direction is Direction.REVERSE
        assert session.segment_index == 1
        assert session.next_index() == 0
        assert session.distance_into_segment == 0.0

        after = advance(session, 4.0, realism, rng)
        assert after.outcome is TickOutcome.MOVED
        assert_allclose(after.raw[1], 0.001 * (1.0 - 50.0 / EQUATOR_LENGTH), rtol=1e-9)

    def test_round_trip_returns_to_start(self, realism, rng):
        session = make_session(EQUATOR_ROUTE, PlaybackParams(round_trip=True), speed=50.0)

        results = run_ticks(session, realism, rng, 6)

        assert results[-1].outcome is TickOutcome.REVERSED
        assert results[-1].position == (0.0, 0.0)
        assert session.direction is Direction.FORWARD
        assert session.segment_index == 0

    def test_loop_resets_to_start(self, realism, rng):
        session = make_session(EQUATOR_ROUTE, PlaybackParams(loop=True), speed=50.0)

        results = run_ticks(session, realism, rng, 3)

        assert results[-1].outcome is TickOutcome.LOOPED
        assert session.segment_index == 0
        assert session.distance_into_segment == 0.0
        assert session.state is PlaybackState.RUNNING

        after = advance(session, 4.0, realism, rng)
        assert after.outcome is TickOutcome.MOVED
        assert_allclose(after.raw[1], 0.001 * 50.0 / EQUATOR_LENGTH, rtol=1e-9)


class TestDwell:

    def test_pause_window_freezes_position(self, realism, rng):
        """A 5 s dwell at a waypoint holds position for the following ticks."""
        pairs = [(0.0, 0.0), (0.0, 0.0001), (0.0, 0.001)]
        params = PlaybackParams(pause_min_s=5.0, pause_max_s=5.0)
        session = make_session(pairs, params, speed=10.0)

        first, second = run_ticks(session, realism, rng, 2)
        assert first.outcome is TickOutcome.MOVED
        assert second.boundaries_crossed == 1
        assert session.pause_until == pytest.approx(2.0 + 5.0)
        held = session.distance_into_segment

        dwelling = run_ticks(session, realism, rng, 4)
        assert all(r.outcome is TickOutcome.DWELLING for r in dwelling)
        assert session.distance_into_segment == held
        assert session.last_tick == 6.0

        resumed = advance(session, 7.0, realism, rng)
        assert resumed.outcome is TickOutcome.MOVED
        assert_allclose(session.distance_into_segment, held + 10.0)

    def test_no_pause_when_window_is_zero(self, rng):
        session = make_session(EQUATOR_ROUTE)
        sample_pause(session, 10.0, rng)
        assert session.pause_until is None

    def test_pause_within_window(self, rng):
        params = PlaybackParams(pause_min_s=2.0, pause_max_s=4.0)
        session = make_session(EQUATOR_ROUTE, params)

        for _ in range(20):
            sample_pause(session, 10.0, rng)
            assert 12.0 <= session.pause_until <= 14.0


class TestSegmentSpeed:

    def test_fixed_speed_without_randomness(self, rng):
        session = make_session(EQUATOR_ROUTE, speed=4.0)
        session.min_speed, session.max_speed = 1.0, 20.0
        assert pick_segment_speed(session, rng) == 4.0

    def test_random_speed_within_band(self, rng):
        session = make_session(EQUATOR_ROUTE, PlaybackParams(random_speed=True), speed=2.5)
        session.min_speed, session.max_speed = 5 / 3.6, 15 / 3.6

        speeds = [pick_segment_speed(session, rng) for _ in range(50)]

        assert min(speeds) >= 5 / 3.6
        assert max(speeds) <= 15 / 3.6
        assert len(set(speeds)) > 1

    def test_random_speed_falls_back_to_base(self, rng):
        session = make_session(EQUATOR_ROUTE, PlaybackParams(random_speed=True), speed=2.5)
        session.min_speed, session.max_speed = 0.0, 0.0
        assert pick_segment_speed(session, rng) == 2.5

    def test_speed_resampled_at_each_boundary(self, realism, rng):
        pairs = [(0.0, 0.0), (0.0, 0.0001), (0.0, 0.0002), (0.0, 0.0003)]
        session = make_session(pairs, PlaybackParams(random_speed=True), speed=2.5)
        session.min_speed, session.max_speed = 1.0, 3.0

        seen = set()
        for _ in range(20):
            run_ticks(session, realism, rng, 1)
            seen.add(session.current_segment_speed)
            if session.state is PlaybackState.COMPLETED:
                break

        assert all(1.0 <= s <= 3.0 for s in seen)
        assert len(seen) > 1
