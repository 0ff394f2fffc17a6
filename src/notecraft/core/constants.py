"""Global constants for Notecraft.

Centralizes magic numbers used throughout the codebase,
making them discoverable, consistent, and easy to modify.
"""

# =============================================================================
# Retry policy defaults
# =============================================================================

DEFAULT_MAX_RETRIES = 3
"""Retries allowed per failing step before the error becomes terminal."""

DEFAULT_BASE_DELAY_SECONDS = 1.0
"""Base delay for exponential backoff."""

DEFAULT_MAX_DELAY_SECONDS = 30.0
"""Ceiling for any computed backoff delay."""

DEFAULT_JITTER_SECONDS = 1.0
"""Upper bound of the uniform random jitter added to backoff delays."""

DEFAULT_RATE_LIMIT_WAIT_SECONDS = 60.0
"""Wait used for rate limits when the service sends no Retry-After header."""

MAX_RATE_LIMIT_WAIT_SECONDS = 300.0
"""Ceiling for a server-requested rate-limit wait."""

DEFAULT_OPERATION_TIMEOUT_SECONDS = 30.0
"""Timeout assumed for a timed-out operation that did not report its own."""

TIMEOUT_RETRY_MULTIPLIER = 1.5
"""Factor applied to the timeout passed to the next attempt after a timeout."""

UNKNOWN_ERROR_MAX_RETRIES = 1
"""Unknown errors explicitly marked retryable get one cautious attempt."""

# =============================================================================
# Metrics
# =============================================================================

RECENT_WINDOW_SIZE = 100
"""Samples kept in each metric series' recent window."""

TREND_WINDOW = 5
"""Samples per half when comparing recent vs preceding means."""

TREND_THRESHOLD = 0.1
"""Relative change beyond which a series is increasing/decreasing."""

# =============================================================================
# Persistence
# =============================================================================

ERROR_HISTORY_IN_REPORT = 10
"""Most recent errors embedded in each persisted error report."""

LATEST_REPORT_FILENAME = "latest-report.json"
"""Fixed pointer file overwritten on every snapshot."""

# =============================================================================
# Duration formatting
# =============================================================================

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
