"""Application constants."""

USER_AGENT = "district-crashes/0.3 (+research; contact: configured-email)"
ANALYSIS_KINDS = (
    "districts",
    "corridor",
    "zone",
)
DISTRICT_KINDS = ("senate", "house")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

GEOGRAPHIC_EPSG = 4326
DEFAULT_PLANAR_EPSG = 26971
FEET_TO_METERS = 0.3048

VICTIM_ROLES = (
    "CYCLIST",
    "DRIVER",
    "PASSENGER",
    "PEDESTRIAN",
    "MOTORCYCLIST",
    "SCOOTER",
)
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "analysis",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
