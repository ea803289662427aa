"""Internal constants shared across the library."""

#: Mean Earth radius used by the haversine distance, in kilometres.
EARTH_RADIUS_KM = 6371.0

SECONDS_PER_HOUR = 3600.0

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3001
DEFAULT_WS_PATH = "/"
DEFAULT_BROADCAST_INTERVAL_S = 1.0
DEFAULT_READ_ERROR_BACKOFF_S = 0.5
DEFAULT_BAUD_RATE = 9600

# ------------------------------------------------------------------
# Finish line rectangle (degrees)
# ------------------------------------------------------------------

FINISH_LINE_MIN_LAT = 40.7125
FINISH_LINE_MAX_LAT = 40.7130
FINISH_LINE_MIN_LNG = -74.0065
FINISH_LINE_MAX_LNG = -74.0055

BATTERY_FIELD_COUNT = 3
GPS_FIELD_COUNT = 2
