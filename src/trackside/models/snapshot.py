"""Aggregated telemetry snapshot and lap log entries."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from trackside.models._base import TracksideBaseModel, UtcDatetime
from trackside.models.readings import BatteryReading, GpsFix


class LapRecord(TracksideBaseModel):
    lap_number: int = Field(ge=1)
    completed_at: UtcDatetime


class TelemetrySnapshot(TracksideBaseModel):
    """Consistent copy of the current vehicle state.

    Instances are produced by :meth:`trackside.state.store.StateStore.read`
    and are never shared with the store's live state.

    Parameters
    ----------
    battery : BatteryReading or None
        Latest battery reading from any battery link.
    gps : GpsFix or None
        Latest position fix.
    speed_kmh : float
        Speed derived from the last two fixes.
    link_status : dict
        ``link_id -> True`` once the link has produced a valid reading.
    laps : tuple of LapRecord
        Lap log for the session, in completion order.
    """

    battery: BatteryReading | None = None
    gps: GpsFix | None = None
    speed_kmh: float = 0.0
    link_status: dict[str, bool] = Field(default_factory=dict)
    laps: tuple[LapRecord, ...] = ()

    @property
    def lap_count(self) -> int:
        return self.laps[-1].lap_number if self.laps else 0

    @property
    def last_lap(self) -> LapRecord | None:
        return self.laps[-1] if self.laps else None

    def to_wire(self) -> dict[str, Any]:
        """JSON-serializable message pushed to viewers.

        Unpopulated ``battery``/``gps`` sections are sent as empty objects.
        """
        last_lap = self.last_lap
        return {
            "battery": self.battery.to_wire() if self.battery is not None else {},
            "gps": self.gps.to_wire() if self.gps is not None else {},
            "status": dict(self.link_status),
            "speedKmh": self.speed_kmh,
            "lapCount": self.lap_count,
            "lastLapAt": last_lap.completed_at.isoformat() if last_lap is not None else None,
        }
