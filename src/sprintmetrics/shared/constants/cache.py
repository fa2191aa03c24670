"""
Cache Configuration Constants

Defaults for the iteration cache and the metric store.
"""

# Base time units for TTL calculations
BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND
BASE_HOUR = 60 * BASE_MINUTE


class CacheConfig:
    """Iteration cache configuration."""

    SCHEMA_VERSION = "1.0"
    DEFAULT_DIR = "cache/iterations"
    DEFAULT_TTL_HOURS = 6
    FILE_SUFFIX = ".json"
    TEMP_SUFFIX = ".tmp"

    # Characters outside this class are replaced when deriving file names
    UNSAFE_KEY_PATTERN = r"[^A-Za-z0-9_-]"
    KEY_REPLACEMENT = "-"

    # In-memory iteration list memo used by the provider
    ITERATION_LIST_TTL = 10 * BASE_MINUTE

    METRICS_DIR = "data"
    METRICS_FILE = "metrics.json"


class CacheStatusConfig:
    """Thresholds for reporting cache freshness."""

    FRESH_HOURS = 1
    STATUS_FRESH = "fresh"
    STATUS_AGING = "aging"
    STATUS_STALE = "stale"
