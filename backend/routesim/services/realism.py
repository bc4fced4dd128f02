"""
Realism post-processing.

Applied to every raw interpolated point before it is emitted, in a fixed
order: bounce, drift, smoothing. Smoothing runs last so it also damps the
bounce and drift jitter.
"""

import logging
from typing import Optional

import numpy as np

from routesim.models.playback import PlaybackSession
from routesim.models.route import Waypoint
from routesim.utils.geodesy import offset


logger = logging.getLogger(__name__)

BOUNCE_PHASE_STEP = 0.35  # radians per emitted point
BOUNCE_BEARING = 90.0     # degrees


class RealismProcessor:
    """
    Bounce / drift / smoothing filter.

    Per-session memory (oscillator phase, smoothing state) lives on the
    PlaybackSession; the processor only holds the random generator.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng if rng is not None else np.random.default_rng()

    def apply(self, session: PlaybackSession, lat: float, lng: float) -> tuple[float, float]:
        """
        Post-process a raw point.

        Args:
            session: Session whose flags and filter memory are used
            lat, lng: Raw interpolated coordinate

        Returns:
            (lat, lng) to emit
        """
        params = session.params
        lat_out, lng_out = lat, lng

        if params.bounce and params.bounce_meters > 0.0:
            session.noise_phase += BOUNCE_PHASE_STEP
            offset_m = np.sin(session.noise_phase) * params.bounce_meters
            d_lat, d_lng = offset(Waypoint(lat_out, lng_out), offset_m, BOUNCE_BEARING)
            lat_out += d_lat
            lng_out += d_lng

        if params.drift and params.drift_meters > 0.0:
            angle = self._rng.uniform(0.0, 360.0)
            d_lat, d_lng = offset(Waypoint(lat_out, lng_out), params.drift_meters, angle)
            lat_out += d_lat
            lng_out += d_lng

        if params.smoothing:
            alpha = min(max(params.smoothing_alpha, 0.0), 1.0)
            prev_lat, prev_lng = session.smoothing_state or (lat_out, lng_out)
            lat_out = prev_lat + (lat_out - prev_lat) * alpha
            lng_out = prev_lng + (lng_out - prev_lng) * alpha
            session.smoothing_state = (lat_out, lng_out)

        return float(lat_out), float(lng_out)
