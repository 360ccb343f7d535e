"""Application constants."""

USER_AGENT = "carceral-pfas-proximity/0.1 (+research; contact: configured-email)"
STAGES = (
    "prepare",
    "link",
    "summarize",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

WGS84 = "EPSG:4326"
CONUS_ALBERS = "EPSG:5070"

# Column names shared by every enriched point collection.
ENTITY_ID = "entity_id"
HUC12 = "huc12"
ELEVATION = "elevation"
ELEVATION_UNITS = "elevation_units"
GEOCODING_CONFIDENT = "geocoding_confident"
SOURCE_TYPE = "source_type"

TARGET_PREFIX = "target_"
SOURCE_PREFIX = "source_"

POPULATION_SENTINEL = -999
GEOCODING_ACCURACY_MAX = 1000
EPQS_NO_DATA = -1000000

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "batch_start",
    "batch_end",
    "error_code",
    "message",
)
