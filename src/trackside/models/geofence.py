"""Finish line geofence."""

from __future__ import annotations

from pydantic import model_validator

from trackside._constants import (
    FINISH_LINE_MAX_LAT,
    FINISH_LINE_MAX_LNG,
    FINISH_LINE_MIN_LAT,
    FINISH_LINE_MIN_LNG,
)
from trackside.models._base import TracksideBaseModel


class FinishLineGeofence(TracksideBaseModel):
    """Rectangular lat/lng zone whose entry counts as a completed lap.

    Bounds are inclusive on all four sides.
    """

    min_lat: float = FINISH_LINE_MIN_LAT
    max_lat: float = FINISH_LINE_MAX_LAT
    min_lng: float = FINISH_LINE_MIN_LNG
    max_lng: float = FINISH_LINE_MAX_LNG

    @model_validator(mode="after")
    def _check_bounds(self) -> FinishLineGeofence:
        if self.min_lat > self.max_lat:
            raise ValueError(f"min_lat {self.min_lat} is greater than max_lat {self.max_lat}")
        if self.min_lng > self.max_lng:
            raise ValueError(f"min_lng {self.min_lng} is greater than max_lng {self.max_lng}")
        return self

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng
