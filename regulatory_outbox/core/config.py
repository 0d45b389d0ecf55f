import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/regulatory_db")

# Application Metadata
PROJECT_NAME = "Regulatory Outbox Service"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def _flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


# Outbox Dispatcher Configuration
POLL_INTERVAL_MS = int(os.getenv("POLL_INTERVAL_MS", 30000)) # Dispatcher tick interval
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Failed passes before a record goes dead
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many records to claim per tick

# Retry delay for failed records. A base of 0 means a failed record is re-claimable on the next tick.
RETRY_BACKOFF_BASE_MS = int(os.getenv("RETRY_BACKOFF_BASE_MS", 0))
RETRY_BACKOFF_MAX_MS = int(os.getenv("RETRY_BACKOFF_MAX_MS", 300000))

# How long a claim is held before another worker may take the record over
CLAIM_LEASE_MS = int(os.getenv("CLAIM_LEASE_MS", 300000))

# 0 disables the limit
HANDLER_TIMEOUT_MS = int(os.getenv("HANDLER_TIMEOUT_MS", 10000))
BATCH_TIME_BUDGET_MS = int(os.getenv("BATCH_TIME_BUDGET_MS", 25000))

STATS_WINDOW_DAYS = int(os.getenv("STATS_WINDOW_DAYS", 30))

FAST_PATH_NOTIFY = _flag("FAST_PATH_NOTIFY", True) # Publisher notifies in-process handlers right after append
DISPATCHER_ENABLED = _flag("DISPATCHER_ENABLED", True) # Run the dispatcher loop inside the API process
