"""
Geodesy utilities.

Great-circle distances and small planar offsets on a spherical Earth,
expressed in decimal degrees and meters.
"""

import numpy as np
from numpy.typing import NDArray
from typing import Sequence

from routesim.models.route import Waypoint

EARTH_RADIUS_M = 6371000.0  # Mean Earth radius (meters)

# Latitude used for the 1/cos(lat) longitude correction is kept away from the
# poles so the delta stays finite.
MAX_CORRECTION_LAT = 89.9999


def distance_meters(a: Waypoint, b: Waypoint) -> float:
    """
    Calculate great-circle (haversine) distance between two waypoints.

    Args:
        a, b: Waypoints in decimal degrees

    Returns:
        Distance in meters
    """
    lat1_rad = np.radians(a.lat)
    lat2_rad = np.radians(b.lat)
    dlat = np.radians(b.lat - a.lat)
    dlon = np.radians(b.lng - a.lng)

    h = np.sin(dlat/2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(h), np.sqrt(1-h))

    return float(EARTH_RADIUS_M * c)


def segment_lengths(points: Sequence[Waypoint]) -> NDArray[np.float64]:
    """
    Vectorised haversine over consecutive waypoints.

    Returns:
        Array of len(points) - 1 segment lengths in meters
    """
    if len(points) < 2:
        return np.zeros(0)

    lat = np.radians(np.array([p.lat for p in points], dtype=np.float64))
    lon = np.radians(np.array([p.lng for p in points], dtype=np.float64))

    dlat = np.diff(lat)
    dlon = np.diff(lon)

    h = np.sin(dlat/2)**2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(h), np.sqrt(1-h))

    return EARTH_RADIUS_M * c


def route_length(points: Sequence[Waypoint]) -> float:
    """Total length of a polyline in meters."""
    return float(np.sum(segment_lengths(points)))


def offset(base: Waypoint, meters: float, bearing_degrees: float) -> tuple[float, float]:
    """
    Convert a planar displacement at a bearing into a lat/lng delta.

    Longitude is scaled by 1/cos(latitude) to account for meridian
    convergence. The latitude used for that correction is clamped to
    +/-MAX_CORRECTION_LAT.

    Args:
        base: Point the displacement is applied at
        meters: Displacement length in meters
        bearing_degrees: Compass bearing (0=N, 90=E)

    Returns:
        Tuple of (d_lat, d_lng) in degrees
    """
    delta = meters / EARTH_RADIUS_M
    bearing = np.radians(bearing_degrees)
    lat = np.clip(base.lat, -MAX_CORRECTION_LAT, MAX_CORRECTION_LAT)

    d_lat = delta * np.cos(bearing)
    d_lng = delta * np.sin(bearing) / np.cos(np.radians(lat))

    return float(np.degrees(d_lat)), float(np.degrees(d_lng))


def interpolate(a: Waypoint, b: Waypoint, fraction: float) -> tuple[float, float]:
    """
    Linear interpolation between two waypoints.

    The fraction is clamped to [0, 1] so the result always lies on the
    segment between a and b.
    """
    t = min(max(fraction, 0.0), 1.0)
    return (
        a.lat + (b.lat - a.lat) * t,
        a.lng + (b.lng - a.lng) * t,
    )


def destination_point(base: Waypoint, meters: float, bearing_degrees: float) -> Waypoint:
    """
    Great-circle forward problem: travel `meters` from `base` along a bearing.

    Longitude is wrapped into [-180, 180).
    """
    delta = meters / EARTH_RADIUS_M
    brng = np.radians(bearing_degrees)
    lat1 = np.radians(base.lat)
    lon1 = np.radians(base.lng)

    lat2 = np.arcsin(
        np.sin(lat1) * np.cos(delta) + np.cos(lat1) * np.sin(delta) * np.cos(brng)
    )
    lon2 = lon1 + np.arctan2(
        np.sin(brng) * np.sin(delta) * np.cos(lat1),
        np.cos(delta) - np.sin(lat1) * np.sin(lat2),
    )

    lng = (np.degrees(lon2) + 180.0) % 360.0 - 180.0
    return Waypoint(float(np.degrees(lat2)), float(lng))


def kmh_to_mps(kmh: float) -> float:
    return kmh * 1000.0 / 3600.0


def mps_to_kmh(mps: float) -> float:
    return mps * 3.6
