from gymsync.processing.performance_monitor import PerformanceMonitor


def test_counters_and_rates():
    monitor = PerformanceMonitor(real_time=False)
    monitor.start()
    monitor.record_batch_attempt(True, 300)
    monitor.record_batch_attempt(False, 0)
    monitor.record_individual_attempt(True, 100)
    monitor.record_individual_attempt(False, 0)
    monitor.record_fallback_record()
    monitor.record_wait(400)

    stats = monitor.stats
    assert stats.batch.total_attempts == 2
    assert stats.batch.success_rate == 50.0
    assert stats.individual.success_rate == 50.0
    assert stats.fallback_rate == 50.0
    assert stats.time.total_processing_ms == 400
    assert stats.time.processing_efficiency == 50.0


def test_rates_are_zero_without_attempts():
    stats = PerformanceMonitor(real_time=False).stats
    assert stats.batch.success_rate == 0.0
    assert stats.fallback_rate == 0.0
    assert stats.time.processing_efficiency == 0.0


def test_snapshot_and_report():
    monitor = PerformanceMonitor(real_time=False)
    monitor.record_retry_attempt(True)
    monitor.record_optimization_attempt(True)
    monitor.update_system_stats(consecutive_failures=1, current_batch_size=7, max_consecutive_failures=3)

    snapshot = monitor.snapshot()
    assert snapshot["retry"]["success_rate"] == 100.0
    assert snapshot["system"]["current_batch_size"] == 7
    assert "fallback_rate" in snapshot

    report = monitor.generate_report()
    assert "Batch size 7" in report
    assert "consecutive failures 1/3" in report


def test_reset():
    monitor = PerformanceMonitor(real_time=False)
    monitor.record_batch_attempt(True, 10)
    monitor.reset()
    assert monitor.stats.batch.total_attempts == 0
    assert monitor.stats.time.total_processing_ms == 0.0


def test_separate_monitors_do_not_share_state():
    first = PerformanceMonitor(real_time=False)
    second = PerformanceMonitor(real_time=False)
    first.record_fallback_record()
    assert second.stats.fallback_records == 0
