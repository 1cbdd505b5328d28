import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from gymsync.config import BatchProcessorConfig
from gymsync.errors import ConfigurationError
from gymsync.models import NO_INFO, CandidateStub, CrawledRecord
from gymsync.processing.batch_processor import AdaptiveBatchProcessor, bounded_batch
from gymsync.processing.performance_monitor import PerformanceMonitor


def fast_config(**overrides) -> BatchProcessorConfig:
    """Processor config without any courtesy delays."""
    values = dict(
        batch_delay=(0, 0),
        low_success_rate_delay=(0, 0),
        individual_delay=(0, 0),
    )
    values.update(overrides)
    return BatchProcessorConfig(**values)


def make_items(count: int):
    return [CandidateStub(name=f"Gym {i}", address=f"서울 강남구 {i}") for i in range(count)]


def found(item, confidence: float = 0.9) -> CrawledRecord:
    return CrawledRecord(name=item.name, address=item.address, phone="02-123-4567", source="naver_cafe", confidence=confidence)


async def echo_batch(batch):
    return [found(item) for item in batch]


@pytest.mark.asyncio
async def test_always_failing_batch_halves_size_and_yields_fallback_records():
    monitor = PerformanceMonitor(real_time=False)
    processor = AdaptiveBatchProcessor(monitor, fast_config(initial_batch_size=10, max_consecutive_failures=1))
    failing = AsyncMock(side_effect=RuntimeError("search backend down"))

    result = await processor.process_batches(make_items(10), failing)

    assert processor.current_batch_size == 5
    assert len(result.results) == 10
    assert all(r.confidence == 0.05 for r in result.results)
    assert all(r.source == "enhanced_fallback" for r in result.results)
    assert result.failed_batches == 1
    assert result.successful_batches == 0
    # one batch call plus one call per item
    assert failing.await_count == 11
    assert monitor.stats.fallback_records == 10


@pytest.mark.asyncio
async def test_fallback_records_carry_placeholders():
    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config(initial_batch_size=2))
    result = await processor.process_batches(make_items(2), AsyncMock(side_effect=RuntimeError("boom")))

    record = result.results[0]
    assert record.name == "Gym 0"
    assert record.address == "서울 강남구 0"
    assert record.phone == NO_INFO
    assert record.price == NO_INFO
    assert record.facilities == ["기본 헬스장"]


@pytest.mark.asyncio
async def test_results_keep_input_order_and_batch_size_grows():
    processor = AdaptiveBatchProcessor(
        PerformanceMonitor(real_time=False), fast_config(initial_batch_size=2, max_batch_size=4)
    )
    items = make_items(12)

    result = await processor.process_batches(items, echo_batch)

    assert [r.name for r in result.results] == [item.name for item in items]
    assert result.failed_batches == 0
    # sizes 2, 3, 4, then capped at 4
    assert result.total_batches == 4
    assert result.average_batch_size == 3.0
    assert processor.current_batch_size == 4


@pytest.mark.asyncio
async def test_partial_individual_recovery():
    calls = []

    async def flaky(batch):
        calls.append(len(batch))
        if len(batch) > 1:
            raise RuntimeError("batch too large")
        if batch[0].name == "Gym 1":
            raise RuntimeError("not found")
        return [found(batch[0])]

    processor = AdaptiveBatchProcessor(
        PerformanceMonitor(real_time=False), fast_config(initial_batch_size=3, max_consecutive_failures=3)
    )
    result = await processor.process_batches(make_items(3), flaky)

    assert [r.confidence for r in result.results] == [0.9, 0.05, 0.9]
    assert result.results[1].source == "enhanced_fallback"
    # two of three recovered, so the failure is forgiven
    assert processor.consecutive_failures == 0
    assert processor.current_batch_size == 3


def timed_config(**overrides) -> BatchProcessorConfig:
    """Processor config with fixed-width delays so every wait is predictable."""
    values = dict(
        batch_delay=(2000, 2000),
        low_success_rate_delay=(7000, 7000),
        individual_delay=(1500, 1500),
    )
    values.update(overrides)
    return BatchProcessorConfig(**values)


def waits(sleeper: AsyncMock):
    return [call.args[0] for call in sleeper.await_args_list]


@pytest.mark.asyncio
async def test_low_success_rate_wait_only_while_work_remains():
    async def weak_results(batch):
        return [found(item, confidence=0.05) for item in batch]

    processor = AdaptiveBatchProcessor(
        PerformanceMonitor(real_time=False), timed_config(initial_batch_size=2, max_batch_size=2)
    )
    with patch("gymsync.processing.batch_processor.sleep_ms", new=AsyncMock()) as sleeper:
        result = await processor.process_batches(make_items(4), weak_results)

    assert result.total_batches == 2
    # extra wait plus courtesy delay after the first batch, nothing after the last
    assert waits(sleeper) == [7000, 2000]


@pytest.mark.asyncio
async def test_courtesy_delay_between_batches_only():
    processor = AdaptiveBatchProcessor(
        PerformanceMonitor(real_time=False), timed_config(initial_batch_size=1, max_batch_size=1)
    )
    with patch("gymsync.processing.batch_processor.sleep_ms", new=AsyncMock()) as sleeper:
        result = await processor.process_batches(make_items(3), echo_batch)

    assert result.total_batches == 3
    assert waits(sleeper) == [2000, 2000]


@pytest.mark.asyncio
async def test_individual_delay_before_each_item():
    async def singles_only(batch):
        if len(batch) > 1:
            raise RuntimeError("batch too large")
        return [found(batch[0])]

    monitor = PerformanceMonitor(real_time=False)
    processor = AdaptiveBatchProcessor(monitor, timed_config(initial_batch_size=3))
    with patch("gymsync.processing.batch_processor.sleep_ms", new=AsyncMock()) as sleeper:
        result = await processor.process_batches(make_items(3), singles_only)

    assert [r.confidence for r in result.results] == [0.9, 0.9, 0.9]
    assert waits(sleeper) == [1500, 1500, 1500]


@pytest.mark.asyncio
async def test_batch_size_halves_once_per_failure_streak():
    calls = []

    async def always_fails(batch):
        calls.append(len(batch))
        raise RuntimeError("search backend down")

    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config(initial_batch_size=10))
    assert processor.config.max_consecutive_failures == 3

    result = await processor.process_batches(make_items(54), always_fails)

    # every batch call is followed by one call per item in it
    batch_sizes = []
    position = 0
    while position < len(calls):
        batch_sizes.append(calls[position])
        position += 1 + calls[position]

    assert batch_sizes == [10, 10, 10, 5, 5, 5, 2, 2, 2, 1, 1, 1]
    assert all(processor.config.min_batch_size <= size <= processor.config.max_batch_size for size in batch_sizes)
    assert processor.current_batch_size == 1
    assert processor.consecutive_failures == 12
    assert result.failed_batches == 12
    assert len(result.results) == 54
    assert all(r.source == "enhanced_fallback" for r in result.results)


@pytest.mark.asyncio
async def test_wrong_length_batch_is_retried_individually():
    async def short(batch):
        return [found(item) for item in batch[:1]]

    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config(initial_batch_size=3))
    result = await processor.process_batches(make_items(3), short)

    assert len(result.results) == 3
    assert result.failed_batches == 1
    assert all(r.confidence == 0.9 for r in result.results)


@pytest.mark.asyncio
async def test_non_record_results_are_rejected():
    async def dicts(batch):
        return [{"name": item.name} for item in batch]

    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config(initial_batch_size=2))
    result = await processor.process_batches(make_items(2), dicts)

    assert result.failed_batches == 1
    assert all(isinstance(r, CrawledRecord) for r in result.results)
    assert all(r.source == "enhanced_fallback" for r in result.results)


@pytest.mark.asyncio
async def test_cancellation_flushes_remaining_items():
    cancel_event = asyncio.Event()

    async def cancel_after_first(batch):
        cancel_event.set()
        return [found(item) for item in batch]

    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config(initial_batch_size=2))
    result = await processor.process_batches(make_items(6), cancel_after_first, cancel_event)

    assert result.cancelled is True
    assert result.total_batches == 1
    assert len(result.results) == 6
    assert [r.confidence for r in result.results[:2]] == [0.9, 0.9]
    assert all(r.source == "enhanced_fallback" for r in result.results[2:])


@pytest.mark.asyncio
async def test_empty_input():
    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config())
    result = await processor.process_batches([], echo_batch)

    assert result.results == []
    assert result.total_batches == 0
    assert result.average_batch_size == 0.0


@pytest.mark.asyncio
async def test_batch_function_with_wrong_signature_is_rejected():
    async def two_args(batch, extra):
        return []

    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config())
    with pytest.raises(ConfigurationError):
        await processor.process_batches(make_items(1), two_args)


def test_set_batch_size_respects_bounds():
    processor = AdaptiveBatchProcessor(PerformanceMonitor(real_time=False), fast_config(min_batch_size=1, max_batch_size=20))
    processor.set_batch_size(15)
    assert processor.current_batch_size == 15
    processor.set_batch_size(50)
    assert processor.current_batch_size == 15
    processor.set_batch_size(0)
    assert processor.current_batch_size == 15


def test_invalid_config_is_rejected():
    with pytest.raises(ConfigurationError):
        BatchProcessorConfig(min_batch_size=5, max_batch_size=2)
    with pytest.raises(ConfigurationError):
        BatchProcessorConfig(batch_delay=(3000, 1000))


def test_initial_batch_size_is_clamped():
    assert BatchProcessorConfig(initial_batch_size=50, max_batch_size=20).initial_batch_size == 20


@pytest.mark.asyncio
async def test_bounded_batch_limits_concurrency():
    in_flight = 0
    peak = 0

    async def worker(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return found(item)

    batch_fn = bounded_batch(worker, max_concurrency=2)
    items = make_items(6)
    results = await batch_fn(items)

    assert peak == 2
    assert [r.name for r in results] == [item.name for item in items]


def test_bounded_batch_requires_positive_concurrency():
    with pytest.raises(ConfigurationError):
        bounded_batch(AsyncMock(), max_concurrency=0)
