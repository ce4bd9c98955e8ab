"""Metrics catalog for plano storage, cache, and export instrumentation.

The registry is built explicitly from a ``MeterProvider`` and passed by
reference to the components it instruments; nothing here touches the global
OpenTelemetry provider.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Observation
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.util.types import AttributeValue

if TYPE_CHECKING:
    from opentelemetry.sdk.metrics.export import MetricReader

SCOPE_NAME = "plano"
SERVICE_NAME = "plano"

STORE_OPERATIONS: tuple[str, ...] = (
    "get",
    "get_range",
    "head",
    "put",
    "put_multipart",
    "delete",
    "list",
    "list_with_delimiter",
    "copy",
    "copy_if_not_exists",
)

_STORE_PREFIX = "plano.store"
_CACHE_READS = "plano.query_cache.reads"
_CACHE_MISSES = "plano.query_cache.misses"
_CACHE_CAPACITY = "plano.query_cache.capacity"
_CACHE_USAGE = "plano.query_cache.usage"
_EXPORT_FILES = "plano.export.files_written"
_EXPORT_ROWS = "plano.export.rows_written"


def store_metric_name(operation: str) -> str:
    """Return the counter name for an object store operation.

    Returns
    -------
    str
        Counter name such as ``plano.store.get``.
    """
    return f"{_STORE_PREFIX}.{operation}"


def _instrumentation_version() -> str:
    try:
        return version("plano")
    except PackageNotFoundError:
        return "unknown"


@dataclass
class GaugeStore:
    """Track the latest gauge values for observable metrics."""

    name: str
    description: str
    unit: str
    _values: dict[tuple[tuple[str, AttributeValue], ...], float]
    _lock: threading.Lock

    @classmethod
    def create(cls, *, name: str, description: str, unit: str) -> GaugeStore:
        return cls(
            name=name,
            description=description,
            unit=unit,
            _values={},
            _lock=threading.Lock(),
        )

    def observe(self, _options: CallbackOptions) -> Iterable[Observation]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield Observation(value, dict(key))

    def set_value(self, value: float, attributes: Mapping[str, AttributeValue]) -> None:
        key = tuple(sorted(attributes.items()))
        with self._lock:
            self._values[key] = value

    def value(self, attributes: Mapping[str, AttributeValue]) -> float | None:
        key = tuple(sorted(attributes.items()))
        with self._lock:
            return self._values.get(key)


def build_meter_provider(readers: Sequence[MetricReader] = ()) -> MeterProvider:
    """Build a process-local ``MeterProvider`` feeding the given readers.

    Returns
    -------
    MeterProvider
        Provider tagged with the plano service resource.
    """
    resource = Resource.create({"service.name": SERVICE_NAME})
    return MeterProvider(metric_readers=list(readers), resource=resource)


def prometheus_reader() -> MetricReader:
    """Return a reader that exposes metrics through ``prometheus_client``.

    Returns
    -------
    MetricReader
        Reader registered with the default Prometheus collector registry.
    """
    from opentelemetry.exporter.prometheus import PrometheusMetricReader

    return PrometheusMetricReader()


@dataclass
class MetricsRegistry:
    """Registry for plano metric instruments."""

    meter_provider: MeterProvider
    store_operations: dict[str, metrics.Counter]
    cache_reads: metrics.Counter
    cache_misses: metrics.Counter
    cache_capacity: GaugeStore
    cache_usage: GaugeStore
    export_files_written: metrics.Counter
    export_rows_written: metrics.Counter

    @classmethod
    def create(cls, meter_provider: MeterProvider | None = None) -> MetricsRegistry:
        """Create every instrument against ``meter_provider``.

        Returns
        -------
        MetricsRegistry
            Registry owning the provider it was built from.
        """
        provider = meter_provider if meter_provider is not None else build_meter_provider()
        meter = provider.get_meter(SCOPE_NAME, _instrumentation_version())
        store_operations = {
            operation: meter.create_counter(
                store_metric_name(operation),
                unit="1",
                description=f"Object store {operation} calls.",
            )
            for operation in STORE_OPERATIONS
        }
        registry = cls(
            meter_provider=provider,
            store_operations=store_operations,
            cache_reads=meter.create_counter(
                _CACHE_READS,
                unit="1",
                description="Query cache lookups.",
            ),
            cache_misses=meter.create_counter(
                _CACHE_MISSES,
                unit="1",
                description="Query cache lookups that found no entry.",
            ),
            cache_capacity=GaugeStore.create(
                name=_CACHE_CAPACITY,
                description="Configured query cache capacity.",
                unit="1",
            ),
            cache_usage=GaugeStore.create(
                name=_CACHE_USAGE,
                description="Entries currently held by the query cache.",
                unit="1",
            ),
            export_files_written=meter.create_counter(
                _EXPORT_FILES,
                unit="1",
                description="Partition files written by exports.",
            ),
            export_rows_written=meter.create_counter(
                _EXPORT_ROWS,
                unit="1",
                description="Rows written by exports.",
            ),
        )
        for gauge in (registry.cache_capacity, registry.cache_usage):
            meter.create_observable_gauge(
                gauge.name,
                callbacks=[gauge.observe],
                description=gauge.description,
                unit=gauge.unit,
            )
        return registry

    def record_store_operation(self, operation: str) -> None:
        """Increment the counter dedicated to ``operation``."""
        self.store_operations[operation].add(1)

    def record_cache_read(self, *, hit: bool) -> None:
        """Count one cache lookup, and a miss when ``hit`` is false."""
        self.cache_reads.add(1)
        if not hit:
            self.cache_misses.add(1)

    def set_cache_capacity(self, capacity: int) -> None:
        self.cache_capacity.set_value(float(capacity), {})

    def set_cache_usage(self, usage: int) -> None:
        self.cache_usage.set_value(float(usage), {})

    def record_export_file(self, rows: int, *, file_format: str) -> None:
        """Count one written export file and its rows."""
        attributes = {"format": file_format}
        self.export_files_written.add(1, attributes)
        self.export_rows_written.add(rows, attributes)

    def shutdown(self) -> None:
        """Flush and shut down the owned meter provider."""
        self.meter_provider.shutdown()


__all__ = [
    "STORE_OPERATIONS",
    "GaugeStore",
    "MetricsRegistry",
    "build_meter_provider",
    "prometheus_reader",
    "store_metric_name",
]
