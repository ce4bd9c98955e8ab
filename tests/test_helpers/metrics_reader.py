"""Helpers for reading OpenTelemetry metrics in tests."""

from __future__ import annotations

from collections.abc import Mapping

from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from obs.metrics import MetricsRegistry, build_meter_provider


def metrics_harness() -> tuple[MetricsRegistry, InMemoryMetricReader]:
    """Return a registry wired to an in-memory reader.

    Returns
    -------
    tuple[MetricsRegistry, InMemoryMetricReader]
        Registry and the reader collecting its metrics.
    """
    reader = InMemoryMetricReader()
    return MetricsRegistry.create(build_meter_provider([reader])), reader


def metric_value(
    reader: InMemoryMetricReader,
    name: str,
    attributes: Mapping[str, object] | None = None,
) -> float | None:
    """Return the summed value of ``name``'s points matching ``attributes``.

    Returns
    -------
    float | None
        Sum of matching point values, or None when the metric has no points.
    """
    data = reader.get_metrics_data()
    if data is None:
        return None
    total: float | None = None
    for resource_metric in data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            for metric in scope_metric.metrics:
                if metric.name != name:
                    continue
                for point in metric.data.data_points:
                    if attributes is not None and dict(point.attributes or {}) != dict(
                        attributes
                    ):
                        continue
                    total = (total or 0.0) + point.value
    return total


__all__ = ["metric_value", "metrics_harness"]
