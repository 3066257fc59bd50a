from uema_data.utils.observability import DataLayerMetrics, get_metrics, time_operation


def test_data_layer_metrics_snapshot():
    metrics = DataLayerMetrics()
    metrics.record("remote::get:documents", 10.0)
    metrics.record("remote::get:documents", 20.0)
    metrics.record("remote::post:processes", 5.0)
    metrics.increment_counter("remote_skip::unconfigured")
    metrics.increment_counter("remote_skip::unconfigured")

    with time_operation(metrics, "cache::update"):
        pass

    snapshot = metrics.snapshot()
    operations = snapshot["operations"]
    assert operations["remote::get:documents"]["count"] == 2
    assert operations["remote::get:documents"]["avg_latency_ms"] == 15.0
    assert operations["remote::get:documents"]["p50_latency_ms"] == 10.0
    assert operations["remote::get:documents"]["p95_latency_ms"] == 20.0
    assert operations["remote::post:processes"]["count"] == 1
    assert operations["cache::update"]["count"] == 1

    assert snapshot["counters"]["remote_skip::unconfigured"] == 2
    assert metrics.counter("remote_skip::unconfigured") == 2
    assert metrics.counter("never_seen") == 0

    metrics.reset()
    assert metrics.snapshot() == {}


def test_time_operation_records_on_error():
    metrics = DataLayerMetrics()

    try:
        with time_operation(metrics, "failing"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert metrics.snapshot()["operations"]["failing"]["count"] == 1


def test_get_metrics_is_process_wide():
    assert get_metrics() is get_metrics()
