"""
Centralized constants for the batch engine.
All magic numbers extracted from codebase.
"""

# ===========================================
# POLLING
# ===========================================
POLL_INTERVAL_SECONDS = 3.0           # advance request cadence
MAX_POLL_SECONDS = 30 * 60            # 30 minutes - global polling ceiling
REQUEST_TIMEOUT_SECONDS = 60.0        # one advance call may run a full AI edit

# ===========================================
# WORKER
# ===========================================
WORKER_BASE_URL = "http://localhost:3000/api"
ADVANCE_PATH = "/batch/{batch_id}/advance"

# ===========================================
# ITEM PROGRESS (worker reports status only)
# ===========================================
PROGRESS_COMPLETED = 100
PROGRESS_PROCESSING = 50
PROGRESS_PENDING = 0

# ===========================================
# FILE NAMING
# ===========================================
DEFAULT_EXTENSION = ".jpg"
DEFAULT_SEPARATOR = "_"
DEFAULT_START_NUMBER = 1
BATCH_NAME_TOKEN = "batch"
PREVIEW_COUNT = 3

# ===========================================
# PERSISTENCE
# ===========================================
STATE_PATH = "data/batch_state.json"
STATE_VERSION = 1

# ===========================================
# LOGGING
# ===========================================
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'logs/batch_engine.log'
LOG_MAX_SIZE_MB = 10
LOG_BACKUP_COUNT = 5
