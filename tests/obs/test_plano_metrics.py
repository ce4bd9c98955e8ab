"""Contract tests for the plano metrics catalog."""

from __future__ import annotations

from obs.metrics import STORE_OPERATIONS, GaugeStore, store_metric_name
from tests.test_helpers.metrics_reader import metric_value, metrics_harness


def _metric_names(reader: object) -> set[str]:
    data = reader.get_metrics_data()
    names: set[str] = set()
    for resource_metric in data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            names.update(metric.name for metric in scope_metric.metrics)
    return names


def test_metrics_catalog_emits() -> None:
    """Ensure every instrument reports under its catalog name."""
    metrics, reader = metrics_harness()
    for operation in STORE_OPERATIONS:
        metrics.record_store_operation(operation)
    metrics.record_cache_read(hit=False)
    metrics.set_cache_capacity(10)
    metrics.set_cache_usage(4)
    metrics.record_export_file(7, file_format="csv")
    names = _metric_names(reader)
    assert {store_metric_name(operation) for operation in STORE_OPERATIONS} <= names
    assert {
        "plano.query_cache.reads",
        "plano.query_cache.misses",
        "plano.query_cache.capacity",
        "plano.query_cache.usage",
        "plano.export.files_written",
        "plano.export.rows_written",
    } <= names


def test_export_metrics_carry_format() -> None:
    """Ensure export counters are split by file format."""
    metrics, reader = metrics_harness()
    metrics.record_export_file(7, file_format="csv")
    metrics.record_export_file(3, file_format="parquet")
    assert metric_value(reader, "plano.export.rows_written", {"format": "csv"}) == 7
    assert metric_value(reader, "plano.export.rows_written", {"format": "parquet"}) == 3
    assert metric_value(reader, "plano.export.files_written") == 2


def test_resource_names_the_service() -> None:
    """Ensure exported metrics carry the plano service resource."""
    metrics, reader = metrics_harness()
    metrics.record_cache_read(hit=True)
    data = reader.get_metrics_data()
    resource = data.resource_metrics[0].resource
    assert resource.attributes["service.name"] == "plano"
    assert metric_value(reader, "plano.query_cache.misses") is None


def test_gauge_store_keeps_latest_value() -> None:
    """Ensure gauges report the most recent value per attribute set."""
    gauge = GaugeStore.create(name="g", description="d", unit="1")
    gauge.set_value(1.0, {"a": "x"})
    gauge.set_value(2.0, {"a": "x"})
    assert gauge.value({"a": "x"}) == 2.0
    assert gauge.value({"a": "y"}) is None
