"""Application-wide constants."""

# Version info
APP_NAME = "Tripwire"
APP_DESCRIPTION = "Event listeners and scheduled actions for a personal assistant"

# Storage
DEFAULT_DATA_DIR = "data"
DEFAULT_DATABASE_URL = "sqlite:///data/tripwire.db"
DEFAULT_OWNERS_CONFIG = "owners.yaml"

# Webhook API
DEFAULT_API_SERVER_HOST = "0.0.0.0"
DEFAULT_API_SERVER_PORT = 7004
DEFAULT_PUBLIC_EVENTS_HOST = "localhost:7004"
PING_EVENT_ID = "ping"
EVENTS_PLATFORM = "events"
TELEGRAM_PLATFORM = "telegram"
MAX_RAW_BODY_LENGTH = 5000

# Listener lifecycle
DEFAULT_LISTENER_SWEEP_INTERVAL_SECONDS = 60

# Action scheduling
DEFAULT_SCHEDULER_TIMEZONE = "UTC"

# Instruction executor
DEFAULT_EXECUTOR_TIMEOUT_SECONDS = 120
IGNORE_SENTINEL = "IGNORE"

# Message limits
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
