"""Shared constants for the kds-relay application.

For environment-based configuration (endpoints, intervals, paths), use the env module:
    from common.env import env
    heartbeat = env.heartbeat_seconds()
"""

from pathlib import Path

# Data directories
DATA_DIR = Path("./data")
SETTINGS_PATH = DATA_DIR / "settings.json"
LOG_FILE_PATH = DATA_DIR / "kds_log.txt"
UPDATE_DIR = DATA_DIR / "updates"

# Labels rendered by the observed KDS application
IN_PROGRESS_MARKER = "조리중"
IN_PROGRESS_PATTERN = r"조리중\s*(\d+)"
EMPTY_STATE_SENTINEL = "조리할 주문이 없습니다"
SECONDARY_COUNT_PATTERN = r"수량\s*(\d+)"
# "조리완료" is the action button on each ticket, not the completed counter
COMPLETED_PATTERN = r"(?<!조리)완료\s*(\d+)"
ORDER_ID_PATTERN = r"#(\d+)"

# Tree traversal
MAX_TREE_DEPTH = 15
MAX_DUMP_DEPTH = 10
SIBLING_COUNT_RANGE = range(0, 100)

# Reconciliation
HISTORY_LIMIT = 100
UNKNOWN_COUNT = -1

# Rolling log
LOG_RING_LIMIT = 50
LOG_FILE_MAX_BYTES = 500_000
LOG_UPLOAD_LINES = 100

# Network timeouts (seconds)
CONTROL_TIMEOUT = 10
DATA_TIMEOUT = 60

# Primary store document paths
PRIMARY_STATUS_PATH = "kds_status.json"
PRIMARY_LOG_PATH = "kds_log.json"
PRIMARY_DUMP_PATH = "kds_dump.json"
PRIMARY_HISTORY_PATH = "kds_history.json"
STATE_SOURCE = "kds"

# Secondary store sub-files
SECONDARY_STATUS_FILE = "kds_status.json"
SECONDARY_LOG_FILE = "kds_log.txt"

# Push channel
PUSH_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_EARLY_EXPIRY_SECONDS = 600
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Self-update
MAX_REDIRECTS = 5
MIN_PACKAGE_BYTES = 100_000
RECONNECT_BACKOFF_SECONDS = 10
PACKAGE_SUFFIX = ".apk"

# Settings store keys
KEY_KDS_PACKAGE = "kds_package"
KEY_LAST_COUNT = "last_count"
KEY_LAST_UPLOAD_TIME = "last_upload_time"
KEY_LOG = "log_text"
