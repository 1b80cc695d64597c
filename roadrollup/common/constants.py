"""Application constants."""

USER_AGENT = "roadrollup/0.4 (+district-rollups; contact: configured-email)"
COMMANDS = (
    "refresh",
    "refresh-all",
    "status",
    "export-budget",
    "export-tiles",
    "history",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

OP_REFRESH_RAW = "refresh_segments_raw"
OP_REFRESH_DEDUP = "refresh_segments_dedup"
OP_REFRESH_ROLLUPS = "refresh_rollups"
OP_COMPLETE_REFRESH = "complete_refresh"
OP_REFRESH_ERROR = "refresh_error"
ERROR_RECORDS_SENTINEL = -1

CALC_RAW = "raw"
CALC_DEDUPLICATED = "deduplicated"
CALCULATION_TYPES = (CALC_RAW, CALC_DEDUPLICATED)

METERS_PER_MILE = 1609.34
FEET_PER_METER = 3.28084
SQ_METERS_PER_SQ_MILE = 2589988.110336

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "district",
    "event",
    "status",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
