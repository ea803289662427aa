"""Typed readings produced by the link parser."""

from __future__ import annotations

from enum import StrEnum

from trackside.models._base import TracksideBaseModel, UtcDatetime


class LinkKind(StrEnum):
    BATTERY = "battery"
    GPS = "gps"


class BatteryReading(TracksideBaseModel):
    """One battery monitor sample.

    Parameters
    ----------
    voltage : float
        Pack voltage in volts.
    current : float
        Current in amperes.
    power : float
        Power in watts.
    source_link : str
        Identifier of the link the line arrived on. Kept for diagnostics
        only; the snapshot holds a single battery reading (last writer wins).
    """

    voltage: float
    current: float
    power: float
    source_link: str = ""

    def to_wire(self) -> dict[str, float]:
        return {"voltage": self.voltage, "current": self.current, "power": self.power}


class GpsFix(TracksideBaseModel):
    """One position fix, stamped with the time it was received."""

    lat: float
    lng: float
    observed_at: UtcDatetime

    def to_wire(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}
