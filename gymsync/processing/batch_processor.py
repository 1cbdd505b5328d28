import asyncio
import inspect
import random
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence
from loguru import logger

from gymsync.config import FALLBACK_CONFIDENCE, BatchProcessorConfig
from gymsync.errors import ConfigurationError, InvalidShape
from gymsync.models import BatchResult, CrawledRecord
from gymsync.processing.performance_monitor import PerformanceMonitor
from gymsync.timing import jitter_ms, sleep_ms

BatchFn = Callable[[List[Any]], Awaitable[List[CrawledRecord]]]

# Results above this confidence count as real finds when computing the success rate
SUCCESS_CONFIDENCE = 0.1
PARTIAL_RECOVERY_RATE = 50.0


def bounded_batch(worker: Callable[[Any], Awaitable[CrawledRecord]], max_concurrency: int) -> BatchFn:
    """
    Wrap a per-item coroutine into a batch function that fans out with at
    most `max_concurrency` items in flight. Results keep the batch order.
    """
    if max_concurrency < 1:
        raise ConfigurationError("max_concurrency must be positive")

    async def process(batch: List[Any]) -> List[CrawledRecord]:
        semaphore = asyncio.Semaphore(max_concurrency)

        async def run(item):
            async with semaphore:
                return await worker(item)

        return list(await asyncio.gather(*[run(item) for item in batch]))

    return process


class AdaptiveBatchProcessor:
    """
    Drive items through a batch function in adaptively sized chunks.

    Batch size grows by one after every successful batch and halves once
    max_consecutive_failures failures accumulate. A failed batch is retried
    item by item; items that still fail get a low-confidence synthetic
    record, so the output always has one record per input item.
    """

    def __init__(
        self,
        monitor: PerformanceMonitor,
        config: Optional[BatchProcessorConfig] = None,
        rng: Optional[random.Random] = None,
        fallback_confidence: float = FALLBACK_CONFIDENCE,
    ):
        self.config = config or BatchProcessorConfig()
        self.monitor = monitor
        self.rng = rng or random.Random()
        self.fallback_confidence = fallback_confidence
        self.current_batch_size = self.config.initial_batch_size
        self.consecutive_failures = 0
        self._failures_since_resize = 0

    def reset(self) -> None:
        """Restore the default batch state at the start of a session."""
        self.current_batch_size = self.config.initial_batch_size
        self.consecutive_failures = 0
        self._failures_since_resize = 0

    def set_batch_size(self, size: int) -> None:
        if self.config.min_batch_size <= size <= self.config.max_batch_size:
            self.current_batch_size = size
            logger.info(f"📦 Batch size set to {size}")
        else:
            logger.warning(
                f"⚠️ Batch size must be within {self.config.min_batch_size}-{self.config.max_batch_size}, got {size}"
            )

    def set_max_consecutive_failures(self, max_failures: int) -> None:
        if max_failures > 0:
            self.config.max_consecutive_failures = max_failures
            logger.info(f"⚠️ Max consecutive failures set to {max_failures}")
        else:
            logger.warning("⚠️ Max consecutive failures must be positive")

    async def process_batches(
        self,
        items: Sequence[Any],
        process_batch: BatchFn,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """
        Process every item, returning exactly one record per item in input order.

        Args:
            items: Candidate items (objects or mappings with name/address).
            process_batch: Coroutine turning a list of items into one record per item.
            cancel_event: When set, remaining items are flushed as fallback records.

        Returns:
            BatchResult with the records and batch counters.

        Raises:
            ConfigurationError: If process_batch cannot be called with a single list argument.
        """
        self._check_batch_fn(process_batch)
        items = list(items)
        start = time.perf_counter()
        results: List[CrawledRecord] = []
        successful_batches = 0
        failed_batches = 0
        chunked_items = 0
        cancelled = False
        index = 0

        logger.info(f"📦 Processing {len(items)} items, initial batch size {self.current_batch_size}")

        while index < len(items):
            if self._is_cancelled(cancel_event):
                cancelled = True
                break

            if self.current_batch_size <= 0:
                self.current_batch_size = 1
                logger.warning("⚠️ Batch size dropped to 0, reset to 1")

            chunk = items[index:index + self.current_batch_size]
            index += len(chunk)
            chunked_items += len(chunk)
            batch_number = successful_batches + failed_batches + 1
            logger.info(f"🔄 Batch {batch_number}: {len(chunk)} items ({index}/{len(items)})")

            try:
                batch_start = time.perf_counter()
                batch_results = await process_batch(chunk)
                self._validate(batch_results, len(chunk))
            except Exception as e:
                failed_batches += 1
                logger.error(f"❌ Batch {batch_number} failed: {e}")
                self.monitor.record_batch_attempt(False, 0)
                self._handle_batch_failure()

                logger.info(f"🔄 Batch {batch_number} falling back to individual processing")
                individual, cancelled = await self._process_individually(chunk, process_batch, cancel_event)
                results.extend(individual)
            else:
                elapsed_ms = (time.perf_counter() - batch_start) * 1000
                results.extend(batch_results)
                successful_batches += 1
                self.monitor.record_batch_attempt(True, elapsed_ms)
                self.consecutive_failures = 0
                self._failures_since_resize = 0
                self._grow_batch_size()
                await self._handle_success_rate(results, more_work=index < len(items))

            if cancelled:
                break
            if index < len(items):
                wait = jitter_ms(self.config.batch_delay, self.rng)
                self.monitor.record_wait(wait)
                logger.debug(f"⏳ Waiting {wait:.0f}ms before the next batch")
                await sleep_ms(wait)

        if index < len(items):
            logger.warning(f"🛑 Cancelled with {len(items) - index} items left, flushing fallback records")
            for item in items[index:]:
                results.append(self._fallback_record(item))

        self.monitor.update_system_stats(
            self.consecutive_failures, self.current_batch_size, self.config.max_consecutive_failures
        )
        total_batches = successful_batches + failed_batches
        return BatchResult(
            results=results,
            total_batches=total_batches,
            successful_batches=successful_batches,
            failed_batches=failed_batches,
            average_batch_size=chunked_items / total_batches if total_batches else 0.0,
            processing_time_ms=(time.perf_counter() - start) * 1000,
            final_batch_size=self.current_batch_size,
            cancelled=cancelled,
        )

    @staticmethod
    def _check_batch_fn(process_batch) -> None:
        if not callable(process_batch):
            raise ConfigurationError("process_batch must be callable")
        try:
            signature = inspect.signature(process_batch)
        except (TypeError, ValueError):
            return
        try:
            signature.bind([])
        except TypeError as e:
            raise ConfigurationError(f"process_batch must accept a single list argument: {e}") from e

    @staticmethod
    def _is_cancelled(cancel_event) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    def _validate(batch_results, expected: int) -> None:
        if batch_results is None or not isinstance(batch_results, list):
            raise InvalidShape(f"batch function returned {type(batch_results).__name__}, expected list")
        if len(batch_results) != expected:
            raise InvalidShape(f"batch function returned {len(batch_results)} records for {expected} items")
        for record in batch_results:
            if not isinstance(record, CrawledRecord):
                raise InvalidShape(f"batch function returned a {type(record).__name__} record")

    def _grow_batch_size(self) -> None:
        old_size = self.current_batch_size
        self.current_batch_size = min(self.config.max_batch_size, self.current_batch_size + 1)
        if self.current_batch_size > old_size:
            self.monitor.record_optimization_attempt(True)
            logger.debug(f"✅ Batch size increased {old_size} → {self.current_batch_size}")

    def _handle_batch_failure(self) -> None:
        self.consecutive_failures += 1
        self._failures_since_resize += 1
        if self._failures_since_resize >= self.config.max_consecutive_failures:
            self._failures_since_resize = 0
            self.monitor.record_retry_attempt(True)
            old_size = self.current_batch_size
            self.current_batch_size = max(self.config.min_batch_size, self.current_batch_size // 2)
            logger.warning(
                f"⚠️ {self.consecutive_failures} consecutive failures, batch size {old_size} → {self.current_batch_size}"
            )

    async def _handle_success_rate(self, results: List[CrawledRecord], more_work: bool) -> None:
        if not results:
            return
        found = sum(1 for record in results if record.confidence > SUCCESS_CONFIDENCE)
        rate = found / len(results) * 100
        logger.info(f"📊 Success rate so far: {rate:.1f}% ({found}/{len(results)})")

        if rate < self.config.low_success_rate_threshold and more_work:
            self.monitor.record_optimization_attempt(True)
            wait = jitter_ms(self.config.low_success_rate_delay, self.rng)
            self.monitor.record_wait(wait)
            logger.warning(f"⚠️ Low success rate, waiting an extra {wait:.0f}ms")
            await sleep_ms(wait)

    async def _process_individually(self, chunk: List[Any], process_batch: BatchFn, cancel_event) -> tuple:
        """
        Retry each item of a failed batch on its own, strictly one after another.

        Returns:
            (records, cancelled): one record per chunk item, and whether cancellation was seen.
        """
        results: List[CrawledRecord] = []
        successes = 0

        for position, item in enumerate(chunk):
            if self._is_cancelled(cancel_event):
                results.extend(self._fallback_record(rest) for rest in chunk[position:])
                return results, True

            wait = jitter_ms(self.config.individual_delay, self.rng)
            self.monitor.record_wait(wait)
            await sleep_ms(wait)

            name = self._item_name(item)
            try:
                item_start = time.perf_counter()
                item_results = await process_batch([item])
                self._validate(item_results, 1)
            except Exception as e:
                logger.warning(f"❌ Individual processing failed for '{name}': {e}")
                self.monitor.record_individual_attempt(False, 0)
                self.monitor.record_fallback_record()
                results.append(self._fallback_record(item))
            else:
                successes += 1
                self.monitor.record_individual_attempt(True, (time.perf_counter() - item_start) * 1000)
                results.extend(item_results)
                logger.debug(f"✅ Individual processing succeeded for '{name}'")

        success_rate = successes / len(chunk) * 100 if chunk else 0.0
        if success_rate >= PARTIAL_RECOVERY_RATE:
            self.consecutive_failures = max(0, self.consecutive_failures - 1)
            self._failures_since_resize = max(0, self._failures_since_resize - 1)
            self.monitor.record_retry_attempt(True)
            logger.info(f"🔄 Individual success rate {success_rate:.1f}%, consecutive failures now {self.consecutive_failures}")

        return results, False

    def _fallback_record(self, item) -> CrawledRecord:
        return CrawledRecord.fallback_for(item, confidence=self.fallback_confidence)

    @staticmethod
    def _item_name(item) -> str:
        if isinstance(item, dict):
            return str(item.get("name", ""))
        return str(getattr(item, "name", item))
