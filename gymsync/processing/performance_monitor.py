"""
Counters and timings for a crawl session.

One monitor is created per session and handed to the batch processor; there
is no module-level instance.
"""
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict
from loguru import logger

from gymsync.config import REPORT_INTERVAL_SECONDS


def _rate(successes: int, attempts: int) -> float:
    return successes / attempts * 100 if attempts > 0 else 0.0


@dataclass
class AttemptStats:
    total_attempts: int = 0
    total_successes: int = 0

    @property
    def success_rate(self) -> float:
        return _rate(self.total_successes, self.total_attempts)

    def record(self, success: bool) -> None:
        self.total_attempts += 1
        if success:
            self.total_successes += 1


@dataclass
class TimeStats:
    total_processing_ms: float = 0.0
    total_wait_ms: float = 0.0

    @property
    def processing_efficiency(self) -> float:
        """Share of elapsed time spent working rather than waiting, in percent."""
        total = self.total_processing_ms + self.total_wait_ms
        return self.total_processing_ms / total * 100 if total > 0 else 0.0


@dataclass
class SystemStats:
    consecutive_failures: int = 0
    current_batch_size: int = 0
    max_consecutive_failures: int = 0


@dataclass
class PerformanceStats:
    batch: AttemptStats = field(default_factory=AttemptStats)
    individual: AttemptStats = field(default_factory=AttemptStats)
    retry: AttemptStats = field(default_factory=AttemptStats)
    optimization: AttemptStats = field(default_factory=AttemptStats)
    fallback_records: int = 0
    time: TimeStats = field(default_factory=TimeStats)
    system: SystemStats = field(default_factory=SystemStats)

    @property
    def fallback_rate(self) -> float:
        return _rate(self.fallback_records, self.individual.total_attempts)


class PerformanceMonitor:
    def __init__(self, real_time: bool = True, report_interval: float = REPORT_INTERVAL_SECONDS):
        self.real_time = real_time
        self.report_interval = report_interval
        self.stats = PerformanceStats()
        self._start_time = 0.0
        self._last_report = 0.0

    def start(self) -> None:
        self._start_time = time.monotonic()
        self._last_report = self._start_time
        logger.info("📊 Performance monitoring started")

    def record_batch_attempt(self, success: bool, processing_ms: float) -> None:
        self.stats.batch.record(success)
        self.stats.time.total_processing_ms += processing_ms
        self._maybe_report()

    def record_individual_attempt(self, success: bool, processing_ms: float) -> None:
        self.stats.individual.record(success)
        self.stats.time.total_processing_ms += processing_ms

    def record_fallback_record(self) -> None:
        self.stats.fallback_records += 1

    def record_retry_attempt(self, success: bool) -> None:
        self.stats.retry.record(success)

    def record_optimization_attempt(self, success: bool) -> None:
        self.stats.optimization.record(success)

    def record_wait(self, wait_ms: float) -> None:
        self.stats.time.total_wait_ms += wait_ms

    def update_system_stats(self, consecutive_failures: int, current_batch_size: int, max_consecutive_failures: int) -> None:
        self.stats.system = SystemStats(consecutive_failures, current_batch_size, max_consecutive_failures)

    def _maybe_report(self) -> None:
        if not self.real_time or not self._start_time:
            return
        now = time.monotonic()
        if now - self._last_report >= self.report_interval:
            self._last_report = now
            logger.info(
                f"📊 {now - self._start_time:.1f}s elapsed | "
                f"batch {self.stats.batch.success_rate:.1f}% | "
                f"individual {self.stats.individual.success_rate:.1f}% | "
                f"efficiency {self.stats.time.processing_efficiency:.1f}% | "
                f"consecutive failures {self.stats.system.consecutive_failures}"
            )

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data copy of the counters, with derived rates."""
        data = asdict(self.stats)
        for name in ("batch", "individual", "retry", "optimization"):
            data[name]["success_rate"] = getattr(self.stats, name).success_rate
        data["time"]["processing_efficiency"] = self.stats.time.processing_efficiency
        data["fallback_rate"] = self.stats.fallback_rate
        return data

    def generate_report(self) -> str:
        s = self.stats
        lines = [
            "📊 Crawl performance report",
            "=" * 50,
            f"📦 Batches: {s.batch.total_successes}/{s.batch.total_attempts} ({s.batch.success_rate:.1f}%)",
            f"🔧 Individual: {s.individual.total_successes}/{s.individual.total_attempts} ({s.individual.success_rate:.1f}%)",
            f"🔄 Fallback records: {s.fallback_records} ({s.fallback_rate:.1f}%)",
            f"⏱️ Processing {s.time.total_processing_ms / 1000:.1f}s, waiting {s.time.total_wait_ms / 1000:.1f}s "
            f"(efficiency {s.time.processing_efficiency:.1f}%)",
            f"🔁 Retries: {s.retry.total_successes}/{s.retry.total_attempts} ({s.retry.success_rate:.1f}%)",
            f"🚀 Optimizations: {s.optimization.total_successes}/{s.optimization.total_attempts} "
            f"({s.optimization.success_rate:.1f}%)",
            f"⚙️ Batch size {s.system.current_batch_size}, consecutive failures "
            f"{s.system.consecutive_failures}/{s.system.max_consecutive_failures}",
        ]
        return "\n".join(lines)

    def reset(self) -> None:
        self.stats = PerformanceStats()
        self._start_time = 0.0
        self._last_report = 0.0
