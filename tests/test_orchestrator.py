import asyncio
import json
import pytest
from unittest.mock import MagicMock

from gymsync.config import BatchProcessorConfig
from gymsync.errors import SessionAlreadyRunning
from gymsync.models import BaselineRecord, CrawledRecord, SearchAttempt
from gymsync.orchestrator import CrawlOrchestrator, SessionReport
from gymsync.processing.batch_processor import AdaptiveBatchProcessor
from gymsync.processing.performance_monitor import PerformanceMonitor


def fast_processor(monitor: PerformanceMonitor, **overrides) -> AdaptiveBatchProcessor:
    values = dict(batch_delay=(0, 0), low_success_rate_delay=(0, 0), individual_delay=(0, 0))
    values.update(overrides)
    return AdaptiveBatchProcessor(monitor, BatchProcessorConfig(**values))


def mock_chain(search):
    chain = MagicMock()
    chain.search_with_attempts = search
    return chain


async def found_by_cafe(name, address):
    record = CrawledRecord(
        name=name, address=address, phone="02-555-1234", open_hour="06:00",
        source="naver_cafe", confidence=0.8,
    )
    return record, [SearchAttempt("primary_search", True, record, record.confidence, 12.0)]


@pytest.mark.asyncio
async def test_run_session_crawls_and_merges(tmp_path):
    """
    Run a whole session with a mocked search chain and check that crawled
    fields reach the merged output on disk.
    """
    baseline = [
        BaselineRecord(name="A Gym", address="서울 강남구 1", business_status="영업중"),
        BaselineRecord(name="B Gym", address="서울 마포구 2", open_hour="05:00"),
    ]
    monitor = PerformanceMonitor(real_time=False)
    output = tmp_path / "merged.json"
    orchestrator = CrawlOrchestrator(
        chain=mock_chain(found_by_cafe),
        monitor=monitor,
        processor=fast_processor(monitor),
        max_concurrency=2,
        output_path=str(output),
        conflicts_path=str(tmp_path / "conflicts.json"),
    )

    report = await orchestrator.run_session(baseline)

    assert isinstance(report, SessionReport)
    assert report.cancelled is False
    assert len(report.batch.results) == 2
    merged = {r.name: r for r in report.merge.merged_data}
    assert merged["A Gym"].phone == "02-555-1234"
    assert merged["A Gym"].business_status == "영업중"
    assert merged["B Gym"].phone == "02-555-1234"
    assert merged["B Gym"].open_hour == "05:00"
    assert len(report.merge.conflicts) == 1
    assert report.merge.conflicts[0].field == "open_hour"
    assert report.search["primary_search"]["attempts"] == 2
    assert report.performance["batch"]["total_attempts"] == 1
    assert report.errors == []
    assert orchestrator.is_running is False

    saved = json.loads(output.read_text(encoding="utf-8"))
    assert len(saved) == 2


@pytest.mark.asyncio
async def test_failed_searches_fall_back_and_baseline_survives():
    async def always_fails(name, address):
        raise RuntimeError("network down")

    baseline = [BaselineRecord(name=f"Gym {i}", address=f"부산 해운대구 {i}") for i in range(3)]
    monitor = PerformanceMonitor(real_time=False)
    orchestrator = CrawlOrchestrator(
        chain=mock_chain(always_fails),
        monitor=monitor,
        processor=fast_processor(monitor, initial_batch_size=3),
    )

    report = await orchestrator.run_session(baseline)

    assert [r.source for r in report.batch.results] == ["enhanced_fallback"] * 3
    assert len(report.merge.merged_data) == 3
    assert all(r.name.startswith("Gym") for r in report.merge.merged_data)
    assert report.performance["fallback_records"] == 3


@pytest.mark.asyncio
async def test_second_session_is_rejected_while_running():
    release = asyncio.Event()

    async def slow_search(name, address):
        await release.wait()
        return await found_by_cafe(name, address)

    monitor = PerformanceMonitor(real_time=False)
    orchestrator = CrawlOrchestrator(chain=mock_chain(slow_search), monitor=monitor, processor=fast_processor(monitor))
    baseline = [BaselineRecord(name="A Gym", address="X")]

    first = asyncio.create_task(orchestrator.run_session(baseline))
    await asyncio.sleep(0)
    assert orchestrator.is_running is True

    with pytest.raises(SessionAlreadyRunning):
        await orchestrator.run_session(baseline)

    release.set()
    report = await first
    assert len(report.merge.merged_data) == 1
    assert orchestrator.is_running is False


@pytest.mark.asyncio
async def test_cancelled_session_still_merges_everything():
    cancel_event = asyncio.Event()
    cancel_event.set()
    baseline = [BaselineRecord(name=f"Gym {i}", address=f"대구 중구 {i}") for i in range(4)]
    monitor = PerformanceMonitor(real_time=False)
    orchestrator = CrawlOrchestrator(chain=mock_chain(found_by_cafe), monitor=monitor, processor=fast_processor(monitor))

    report = await orchestrator.run_session(baseline, cancel_event)

    assert report.cancelled is True
    assert len(report.batch.results) == 4
    assert len(report.merge.merged_data) == 4
