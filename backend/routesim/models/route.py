"""
Route data model.

A route is an ordered sequence of at least two waypoints; insertion order
is traversal order.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from routesim.exceptions import InvalidRoute


MIN_ROUTE_POINTS = 2


class SpeedMode(Enum):
    """Preset base speed, keyed by the integer code used at the API boundary."""

    WALK = 0
    JOG = 1
    DRIVE = 2

    @property
    def base_speed_mps(self) -> float:
        return _BASE_SPEEDS[self]

    @classmethod
    def from_code(cls, code: int) -> "SpeedMode":
        try:
            return cls(code)
        except ValueError:
            return cls.WALK


_BASE_SPEEDS = {
    SpeedMode.WALK: 2.5,
    SpeedMode.JOG: 4.0,
    SpeedMode.DRIVE: 13.9,
}


@dataclass(frozen=True)
class Waypoint:
    """A single (latitude, longitude) coordinate in decimal degrees."""

    lat: float
    lng: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Route:
    """Immutable ordered list of waypoints."""

    points: tuple[Waypoint, ...]

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index: int) -> Waypoint:
        return self.points[index]

    @property
    def last_index(self) -> int:
        return len(self.points) - 1

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]]) -> "Route":
        """Build a route from (lat, lng) pairs."""
        return cls(tuple(Waypoint(float(p[0]), float(p[1])) for p in pairs))

    def validate(self) -> "Route":
        """
        Check that the route can be played.

        Raises:
            InvalidRoute: fewer than two points, or a non-finite/out-of-range
                coordinate
        """
        if len(self.points) < MIN_ROUTE_POINTS:
            raise InvalidRoute(
                f"Route needs at least {MIN_ROUTE_POINTS} points, got {len(self.points)}",
                point_count=len(self.points),
            )
        for i, p in enumerate(self.points):
            if not (math.isfinite(p.lat) and math.isfinite(p.lng)):
                raise InvalidRoute(f"Point {i} is not finite: {p}", point_count=len(self.points))
            if not (-90.0 <= p.lat <= 90.0 and -180.0 <= p.lng <= 180.0):
                raise InvalidRoute(f"Point {i} out of range: {p}", point_count=len(self.points))
        return self
