STATE_DIR_NAME = ".tadpole"
STORE_FILE = "store.yaml"
STORE_LOCK_FILE = "store.lock"
CONFIG_FILE = "config.yaml"

SCHEMA_VERSION = 1
DEFAULT_LOCK_TIMEOUT = 10.0  # seconds

DEFAULT_API_URL = "http://127.0.0.1:8000"
DEFAULT_REQUEST_TIMEOUT = 15.0  # seconds
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

TASK_ID_PREFIX = "task"
TAG_ID_PREFIX = "tag"
PENDING_ID_PREFIX = "pending"

# Shown to clients when the store cannot be reached.
CONNECTIVITY_HINT = (
    "Task store unavailable. Check your data source configuration "
    "(TADPOLE_DATA_DIR / --project-dir)."
)
