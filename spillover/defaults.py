# Defaults used when the config file leaves a key out.
DEFAULT_CONFIG_NAME = "config/spillover.json"

DEFAULT_LOW_SPACE_PCT = 10
DEFAULT_TARGET_SPACE_PCT = 20
DEFAULT_MAX_MOVES_PER_RUN = 10
DEFAULT_MIN_AGE_DAYS = 7

DEFAULT_LOCK_FILE = ".running"
DEFAULT_LOG_FILE = "spillover.log"
DEFAULT_HISTORY_DIR = ".spillover"
HISTORY_FILE = "moves.csv"
DEFAULT_STALE_LOCK_SECONDS = 7200
DEFAULT_STALE_POLICY = "terminate"
DEFAULT_VERIFIER = "size"
DEFAULT_MONITOR_SESSION = "spillover"

ERROR_LOG_TAIL_LINES = 20
SECONDS_PER_DAY = 86400
