"""trackside - live vehicle telemetry ingestion and websocket broadcast."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("trackside")
except PackageNotFoundError:
    __version__ = "0+local"
from trackside.config import LinkConfig, TracksideConfig
from trackside.exceptions import (
    LinkError,
    LinkIOError,
    LinkUnavailableError,
    ParseError,
    TracksideConfigError,
    TracksideError,
    ViewerSendError,
)
from trackside.geo import GeoMetricsEngine, GeoUpdate, haversine_km
from trackside.ingestion.link import LinkIngestor
from trackside.ingestion.parse import parse_line
from trackside.models import (
    BatteryReading,
    FinishLineGeofence,
    GpsFix,
    LapRecord,
    LinkKind,
    TelemetrySnapshot,
)
from trackside.server import TelemetryServer
from trackside.state.events import SnapshotUpdate
from trackside.state.store import StateStore
from trackside.viewers import ConnectionManager, ViewerConnection

__all__ = [
    "__version__",
    "BatteryReading",
    "ConnectionManager",
    "FinishLineGeofence",
    "GeoMetricsEngine",
    "GeoUpdate",
    "GpsFix",
    "LapRecord",
    "LinkConfig",
    "LinkError",
    "LinkIOError",
    "LinkIngestor",
    "LinkKind",
    "LinkUnavailableError",
    "ParseError",
    "SnapshotUpdate",
    "StateStore",
    "TelemetryServer",
    "TelemetrySnapshot",
    "TracksideConfig",
    "TracksideConfigError",
    "TracksideError",
    "ViewerConnection",
    "ViewerSendError",
    "haversine_km",
    "parse_line",
]
