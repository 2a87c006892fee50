"""Default values for job handling and scheduling."""

DEFAULT_QUEUE_TOPIC = "executions"

DEFAULT_JOB_TIMEOUT = 600.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF = (30.0, 60.0, 120.0)
DEFAULT_RETRY_UNTIL = 1800.0
DEFAULT_LOCK_WAIT_DELAY = 1.0

# added to the job timeout so a crashed worker's lock eventually expires
LOCK_TTL_MARGIN = 60.0

DEFAULT_SCHEDULER_INTERVAL = 60.0
