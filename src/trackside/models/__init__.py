"""Data models for trackside."""

from trackside.models.geofence import FinishLineGeofence
from trackside.models.readings import BatteryReading, GpsFix, LinkKind
from trackside.models.snapshot import LapRecord, TelemetrySnapshot

__all__ = [
    "BatteryReading",
    "FinishLineGeofence",
    "GpsFix",
    "LapRecord",
    "LinkKind",
    "TelemetrySnapshot",
]
