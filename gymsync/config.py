# gymsync/config.py
from dataclasses import dataclass, field
from dotenv import load_dotenv
import os

from gymsync.errors import ConfigurationError

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_range(name: str, default: tuple) -> tuple:
    # "min,max" in milliseconds
    value = os.getenv(name)
    if value in (None, ""):
        return default
    low, high = value.split(",")
    return float(low), float(high)


# Batch processing
INITIAL_BATCH_SIZE = _env_int("GYMSYNC_INITIAL_BATCH_SIZE", 10)
MIN_BATCH_SIZE = _env_int("GYMSYNC_MIN_BATCH_SIZE", 1)
MAX_BATCH_SIZE = _env_int("GYMSYNC_MAX_BATCH_SIZE", 20)
MAX_CONSECUTIVE_FAILURES = _env_int("GYMSYNC_MAX_CONSECUTIVE_FAILURES", 3)
BATCH_DELAY_MS = _env_range("GYMSYNC_BATCH_DELAY_MS", (2000, 5000))
LOW_SUCCESS_RATE_DELAY_MS = _env_range("GYMSYNC_LOW_SUCCESS_RATE_DELAY_MS", (5000, 10000))
INDIVIDUAL_DELAY_MS = _env_range("GYMSYNC_INDIVIDUAL_DELAY_MS", (1000, 3000))
LOW_SUCCESS_RATE_THRESHOLD = _env_float("GYMSYNC_LOW_SUCCESS_RATE_THRESHOLD", 80.0)
MAX_CONCURRENCY = _env_int("GYMSYNC_MAX_CONCURRENCY", 3)

# Search chain
QUERY_DELAY_MS = _env_range("GYMSYNC_QUERY_DELAY_MS", (1000, 3000))
LOW_QUALITY_CONFIDENCE = 0.3
BASIC_INFO_CONFIDENCE = 0.1
FALLBACK_CONFIDENCE = 0.05

# Merging
DUPLICATE_THRESHOLD = _env_float("GYMSYNC_DUPLICATE_THRESHOLD", 0.8)
QUALITY_THRESHOLD = _env_float("GYMSYNC_QUALITY_THRESHOLD", 0.7)
MATCH_CHUNK_SIZE = 5
MERGE_CHUNK_SIZE = 10

# Fetching
FETCH_TIMEOUT_SECONDS = _env_float("GYMSYNC_FETCH_TIMEOUT", 30.0)
REQUESTS_PER_SECOND = _env_float("GYMSYNC_REQUESTS_PER_SECOND", 1.0)
FETCH_RETRIES = 3

# Monitoring
REPORT_INTERVAL_SECONDS = _env_float("GYMSYNC_REPORT_INTERVAL", 10.0)
LOG_LEVEL = os.getenv("GYMSYNC_LOG_LEVEL", "INFO")

# File names
INPUT_JSON = os.getenv("GYMSYNC_INPUT", "gyms_raw.json")
OUTPUT_JSON = os.getenv("GYMSYNC_OUTPUT", "gyms_merged.json")
CONFLICTS_JSON = os.getenv("GYMSYNC_CONFLICTS", "gyms_conflicts.json")


@dataclass(frozen=True)
class DelayRange:
    """Inclusive range of milliseconds a jittered delay is drawn from."""
    min: float
    max: float

    def __post_init__(self):
        if self.min < 0 or self.max < self.min:
            raise ConfigurationError(f"Invalid delay range: {self.min}-{self.max}ms")

    @classmethod
    def of(cls, value) -> "DelayRange":
        """Accept a DelayRange, a (min, max) pair or a {"min", "max"} mapping."""
        if isinstance(value, DelayRange):
            return value
        if isinstance(value, dict):
            return cls(value["min"], value["max"])
        low, high = value
        return cls(low, high)


@dataclass
class BatchProcessorConfig:
    initial_batch_size: int = INITIAL_BATCH_SIZE
    min_batch_size: int = MIN_BATCH_SIZE
    max_batch_size: int = MAX_BATCH_SIZE
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES
    batch_delay: DelayRange = field(default_factory=lambda: DelayRange.of(BATCH_DELAY_MS))
    low_success_rate_delay: DelayRange = field(default_factory=lambda: DelayRange.of(LOW_SUCCESS_RATE_DELAY_MS))
    individual_delay: DelayRange = field(default_factory=lambda: DelayRange.of(INDIVIDUAL_DELAY_MS))
    low_success_rate_threshold: float = LOW_SUCCESS_RATE_THRESHOLD  # percentage

    def __post_init__(self):
        self.batch_delay = DelayRange.of(self.batch_delay)
        self.low_success_rate_delay = DelayRange.of(self.low_success_rate_delay)
        self.individual_delay = DelayRange.of(self.individual_delay)
        if self.min_batch_size < 1:
            raise ConfigurationError("min_batch_size must be at least 1")
        if self.max_batch_size < self.min_batch_size:
            raise ConfigurationError(
                f"max_batch_size ({self.max_batch_size}) is below min_batch_size ({self.min_batch_size})"
            )
        if self.max_consecutive_failures < 1:
            raise ConfigurationError("max_consecutive_failures must be positive")
        if not 0 <= self.low_success_rate_threshold <= 100:
            raise ConfigurationError("low_success_rate_threshold is a percentage in [0, 100]")
        self.initial_batch_size = max(self.min_batch_size, min(self.initial_batch_size, self.max_batch_size))


@dataclass
class MergerConfig:
    duplicate_threshold: float = DUPLICATE_THRESHOLD
    quality_threshold: float = QUALITY_THRESHOLD
    match_chunk_size: int = MATCH_CHUNK_SIZE
    merge_chunk_size: int = MERGE_CHUNK_SIZE

    def __post_init__(self):
        for name in ("duplicate_threshold", "quality_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if self.match_chunk_size < 1 or self.merge_chunk_size < 1:
            raise ConfigurationError("chunk sizes must be positive")


@dataclass
class SearchChainConfig:
    query_delay: DelayRange = field(default_factory=lambda: DelayRange.of(QUERY_DELAY_MS))
    low_quality_confidence: float = LOW_QUALITY_CONFIDENCE
    basic_info_confidence: float = BASIC_INFO_CONFIDENCE

    def __post_init__(self):
        self.query_delay = DelayRange.of(self.query_delay)
        for name in ("low_quality_confidence", "basic_info_confidence"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
