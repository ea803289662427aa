"""Derived geo metrics: instantaneous speed and lap detection.

Both are computed from successive :class:`~trackside.models.GpsFix`
observations:

* Speed is the haversine (great-circle) distance between the previous and
  the current fix divided by the wall-clock time between them.
* A lap is counted when the vehicle *enters* the finish line geofence.
  Dwelling inside the zone for several fixes counts once.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from trackside._constants import EARTH_RADIUS_KM, SECONDS_PER_HOUR
from trackside.models.geofence import FinishLineGeofence
from trackside.models.readings import GpsFix
from trackside.models.snapshot import LapRecord

_logger = logging.getLogger(__name__)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dlat = p2 - p1
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2.0) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dlng / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


@dataclass(frozen=True)
class GeoUpdate:
    """Result of observing one fix."""

    speed_kmh: float
    lap: LapRecord | None = None


class GeoMetricsEngine:
    """Per-session speed and lap state machine.

    Not thread-safe; feed it from a single task (the GPS ingestor).
    """

    def __init__(self, finish_line: FinishLineGeofence | None = None) -> None:
        self._finish_line = finish_line if finish_line is not None else FinishLineGeofence()
        self._last_fix: GpsFix | None = None
        self._speed_kmh = 0.0
        # None until the first fix: entry needs a prior "outside" observation.
        self._was_inside: bool | None = None
        self._lap_count = 0

    @property
    def finish_line(self) -> FinishLineGeofence:
        return self._finish_line

    @property
    def speed_kmh(self) -> float:
        return self._speed_kmh

    @property
    def lap_count(self) -> int:
        return self._lap_count

    def observe(self, fix: GpsFix) -> GeoUpdate:
        speed = self._update_speed(fix)
        lap = self._update_lap(fix)
        return GeoUpdate(speed_kmh=speed, lap=lap)

    def _update_speed(self, fix: GpsFix) -> float:
        last = self._last_fix
        if last is None:
            self._speed_kmh = 0.0
        else:
            elapsed_h = (fix.observed_at - last.observed_at).total_seconds() / SECONDS_PER_HOUR
            if elapsed_h > 0:
                distance = haversine_km(last.lat, last.lng, fix.lat, fix.lng)
                self._speed_kmh = distance / elapsed_h
            else:
                _logger.debug(
                    "Fix at %s is not newer than %s; holding speed %.2f km/h",
                    fix.observed_at.isoformat(),
                    last.observed_at.isoformat(),
                    self._speed_kmh,
                )
        self._last_fix = fix
        return self._speed_kmh

    def _update_lap(self, fix: GpsFix) -> LapRecord | None:
        inside = self._finish_line.contains(fix.lat, fix.lng)
        entered = inside and self._was_inside is False
        self._was_inside = inside
        if not entered:
            return None

        self._lap_count += 1
        lap = LapRecord(lap_number=self._lap_count, completed_at=fix.observed_at)
        _logger.info("Lap %d completed at %s", lap.lap_number, lap.completed_at.isoformat())
        return lap
