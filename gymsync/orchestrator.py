# gymsync/orchestrator.py

import asyncio
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from loguru import logger

from gymsync.config import CONFLICTS_JSON, MAX_CONCURRENCY
from gymsync.errors import SessionAlreadyRunning
from gymsync.models import BaselineRecord, BatchResult, CandidateStub, CrawledRecord, MergeResult, SearchAttempt, now_iso
from gymsync.processing.batch_processor import AdaptiveBatchProcessor, bounded_batch
from gymsync.processing.data_merger import UnifiedDataMerger
from gymsync.processing.performance_monitor import PerformanceMonitor
from gymsync.search.fallback_chain import FallbackSearchChain, summarize_attempts
from gymsync.storage import save_merge_result


@dataclass
class SessionReport:
    """Outcome of one crawl session."""
    session_id: str
    started_at: str
    finished_at: str
    batch: BatchResult
    merge: MergeResult
    performance: Dict[str, Any]
    search: Dict[str, Dict[str, float]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.batch.cancelled


class CrawlOrchestrator:
    """
    Wire the fallback chain, batch processor and merger into one crawl session.

    Args:
        chain (FallbackSearchChain): Looks up one gym on the web.
        merger (UnifiedDataMerger): Reconciles baseline and crawled records.
        monitor (PerformanceMonitor): Owned by this orchestrator and shared with the processor.
        processor (AdaptiveBatchProcessor): Created from the monitor when not given.
        max_concurrency (int): Searches in flight within one batch.
        output_path (Optional[str]): Where merged records are saved; nothing is written when None.
        conflicts_path (Optional[str]): Where the conflict log is saved alongside the output.
    """

    def __init__(
        self,
        chain: Optional[FallbackSearchChain] = None,
        merger: Optional[UnifiedDataMerger] = None,
        monitor: Optional[PerformanceMonitor] = None,
        processor: Optional[AdaptiveBatchProcessor] = None,
        max_concurrency: int = MAX_CONCURRENCY,
        output_path: Optional[str] = None,
        conflicts_path: Optional[str] = CONFLICTS_JSON,
    ):
        self.chain = chain or FallbackSearchChain()
        self.merger = merger or UnifiedDataMerger()
        self.monitor = monitor or PerformanceMonitor()
        self.processor = processor or AdaptiveBatchProcessor(self.monitor)
        self.max_concurrency = max_concurrency
        self.output_path = output_path
        self.conflicts_path = conflicts_path
        self._running = False
        self._attempts: List[SearchAttempt] = []

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_session(
        self,
        baseline: Sequence[BaselineRecord],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SessionReport:
        """
        Crawl every baseline gym, then merge the results back into the baseline.

        Raises:
            SessionAlreadyRunning: If another session on this orchestrator has not finished.
        """
        if self._running:
            raise SessionAlreadyRunning("A crawl session is already running")
        self._running = True

        session_id = uuid.uuid4().hex[:12]
        started_at = now_iso()
        self._attempts = []
        try:
            logger.info(f"🚀 Crawl session {session_id} started for {len(baseline)} gyms")
            self.monitor.reset()
            self.monitor.start()
            self.processor.reset()

            stubs = [
                CandidateStub(name=r.name, address=r.address, service_type=r.service_type, phone=r.phone)
                for r in baseline
            ]
            batch_fn = bounded_batch(self._search_one, self.max_concurrency)
            batch = await self.processor.process_batches(stubs, batch_fn, cancel_event)

            merge = await self.merger.merge(baseline, batch.results)
            errors = list(merge.errors)
            if self.output_path:
                try:
                    save_merge_result(merge, self.output_path, self.conflicts_path)
                except OSError as e:
                    logger.error(f"❌ Saving merged records to {self.output_path} failed: {e}")
                    errors.append(f"save {self.output_path}: {e}")

            logger.info(self.monitor.generate_report())
            logger.info(
                f"🎉 Session {session_id} finished: {len(batch.results)} crawled, "
                f"{merge.statistics.total_processed} merged, quality {merge.statistics.quality_score:.2f}"
            )
            return SessionReport(
                session_id=session_id,
                started_at=started_at,
                finished_at=now_iso(),
                batch=batch,
                merge=merge,
                performance=self.monitor.snapshot(),
                search=self._search_summary(),
                errors=errors,
            )
        finally:
            self._running = False

    async def _search_one(self, stub: CandidateStub) -> CrawledRecord:
        record, attempts = await self.chain.search_with_attempts(stub.name, stub.address)
        self._attempts.extend(attempts)
        return record

    def _search_summary(self) -> Dict[str, Dict[str, float]]:
        """Attempt statistics per strategy across the session."""
        by_engine: Dict[str, List[SearchAttempt]] = defaultdict(list)
        for attempt in self._attempts:
            by_engine[attempt.engine_name].append(attempt)
        return {engine: summarize_attempts(attempts) for engine, attempts in by_engine.items()}
