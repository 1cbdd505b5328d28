"""Adaptive batching, performance bookkeeping and dataset reconciliation."""
from gymsync.processing.batch_processor import AdaptiveBatchProcessor, bounded_batch
from gymsync.processing.data_merger import UnifiedDataMerger
from gymsync.processing.performance_monitor import PerformanceMonitor

__all__ = ["AdaptiveBatchProcessor", "PerformanceMonitor", "UnifiedDataMerger", "bounded_batch"]
