"""In-memory state store.

This is the only component allowed to merge incoming updates into the
shared telemetry snapshot.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from trackside.models.readings import BatteryReading, GpsFix
from trackside.models.snapshot import LapRecord, TelemetrySnapshot
from trackside.state.events import SnapshotUpdate

_logger = logging.getLogger(__name__)


@dataclass
class _LiveState:
    battery: BatteryReading | None = None
    gps: GpsFix | None = None
    speed_kmh: float = 0.0
    link_status: dict[str, bool] = field(default_factory=dict)
    laps: list[LapRecord] = field(default_factory=list)


class StateStore:
    """Holds the single current telemetry snapshot.

    ``merge`` and ``read`` are serialized by an internal lock, so the store
    can be shared between event loop tasks and worker threads. Callers only
    ever receive :class:`TelemetrySnapshot` copies.
    """

    def __init__(self, link_ids: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._state = _LiveState(link_status={link_id: False for link_id in link_ids})

    def merge(self, update: SnapshotUpdate) -> None:
        """Apply a partial update atomically."""
        with self._lock:
            state = self._state
            if update.battery is not None:
                state.battery = update.battery
            if update.gps is not None:
                state.gps = update.gps
            if update.speed_kmh is not None:
                state.speed_kmh = update.speed_kmh
            if update.lap is not None:
                last = state.laps[-1].lap_number if state.laps else 0
                if update.lap.lap_number <= last:
                    _logger.warning(
                        "Ignoring out-of-order lap %d (last recorded lap is %d)",
                        update.lap.lap_number,
                        last,
                    )
                else:
                    state.laps.append(update.lap)
            if update.link_id is not None and not update.is_empty:
                state.link_status[update.link_id] = True

    def read(self) -> TelemetrySnapshot:
        """Return a consistent copy of the current snapshot."""
        with self._lock:
            state = self._state
            return TelemetrySnapshot(
                battery=state.battery,
                gps=state.gps,
                speed_kmh=state.speed_kmh,
                link_status=dict(state.link_status),
                laps=tuple(state.laps),
            )

    def laps(self) -> tuple[LapRecord, ...]:
        with self._lock:
            return tuple(self._state.laps)

    def link_status(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._state.link_status)
