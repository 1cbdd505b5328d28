import argparse
import asyncio
import sys
from loguru import logger

from gymsync.clients import PageFetcher
from gymsync.config import (
    CONFLICTS_JSON,
    INITIAL_BATCH_SIZE,
    INPUT_JSON,
    LOG_LEVEL,
    MAX_CONCURRENCY,
    OUTPUT_JSON,
    BatchProcessorConfig,
)
from gymsync.orchestrator import CrawlOrchestrator
from gymsync.processing import AdaptiveBatchProcessor, PerformanceMonitor
from gymsync.storage import load_baseline


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl gym details and merge them into the baseline dataset.")
    parser.add_argument("--input", default=INPUT_JSON, help="Baseline records (.json or .csv)")
    parser.add_argument("--output", default=OUTPUT_JSON, help="Merged records output (.json)")
    parser.add_argument("--conflicts", default=CONFLICTS_JSON, help="Conflict log output (.json)")
    parser.add_argument("--limit", type=int, default=None, help="Only process the first N baseline records")
    parser.add_argument("--batch-size", type=int, default=INITIAL_BATCH_SIZE, help="Initial batch size")
    parser.add_argument("--max-concurrency", type=int, default=MAX_CONCURRENCY, help="Searches in flight per batch")
    return parser.parse_args(argv)


async def main(argv=None):
    """
    Run one crawl session over the baseline file.

    - Loads the baseline records.
    - Crawls each gym through the fallback search chain in adaptive batches.
    - Merges the crawled records into the baseline and writes the results.
    """
    args = parse_args(argv)

    # Initialize logs
    logger.remove()
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    baseline = load_baseline(args.input, nrows=args.limit)

    monitor = PerformanceMonitor()
    processor = AdaptiveBatchProcessor(monitor, BatchProcessorConfig(initial_batch_size=args.batch_size))
    orchestrator = CrawlOrchestrator(
        monitor=monitor,
        processor=processor,
        max_concurrency=args.max_concurrency,
        output_path=args.output,
        conflicts_path=args.conflicts,
    )

    try:
        report = await orchestrator.run_session(baseline)
        stats = report.merge.statistics
        logger.info(
            f"📊 {stats.total_processed} records written to {args.output} "
            f"({stats.successfully_merged} merged, {stats.fallback_used} fallback, {len(report.merge.conflicts)} conflicts)"
        )
    finally:
        # Close the shared session to prevent unclosed connector warnings
        await PageFetcher().close()


if __name__ == "__main__":
    asyncio.run(main())
