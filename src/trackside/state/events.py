"""Normalized snapshot updates.

Every ingestion path converts its readings into a :class:`SnapshotUpdate`.
Only the state/store layer is allowed to merge them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trackside.models.readings import BatteryReading, GpsFix
from trackside.models.snapshot import LapRecord


class SnapshotUpdate(BaseModel):
    """A partial update to apply to the state store.

    ``None`` fields mean "no update"; they never clear a known value.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    link_id: str | None = Field(default=None, description="Link the update originated from, if any")
    battery: BatteryReading | None = None
    gps: GpsFix | None = None
    speed_kmh: float | None = None
    lap: LapRecord | None = None

    @field_validator("link_id")
    @classmethod
    def _normalize_link_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        link_id = value.strip()
        if not link_id:
            raise ValueError("link_id must be non-empty")
        return link_id

    @property
    def is_empty(self) -> bool:
        return self.battery is None and self.gps is None and self.speed_kmh is None and self.lap is None
