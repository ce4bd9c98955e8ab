"""Tests for the counting object store decorator."""

from __future__ import annotations

import pytest

from obs.metrics import STORE_OPERATIONS, store_metric_name
from storage.metrics_store import MetricsObjectStore, instrument_store
from storage.object_store import InMemoryObjectStore
from tests.test_helpers.metrics_reader import metric_value, metrics_harness


def test_each_operation_increments_its_own_counter() -> None:
    """Ensure every forwarded call bumps exactly its operation counter."""
    metrics, reader = metrics_harness()
    store = MetricsObjectStore(InMemoryObjectStore(), metrics)
    store.put("a", b"xyz")
    store.put_multipart("b", [b"1", b"2"])
    assert store.get("a") == b"xyz"
    assert store.get_range("a", 0, 1) == b"x"
    store.head("a")
    store.list("")
    store.list_with_delimiter("")
    store.copy("a", "c")
    store.copy_if_not_exists("a", "d")
    store.delete("d")
    for operation in STORE_OPERATIONS:
        assert metric_value(reader, store_metric_name(operation)) == 1


def test_failed_calls_are_counted_and_propagate() -> None:
    """Ensure errors from the inner store pass through after counting."""
    metrics, reader = metrics_harness()
    store = MetricsObjectStore(InMemoryObjectStore(), metrics)
    with pytest.raises(FileNotFoundError):
        store.get("missing")
    assert metric_value(reader, store_metric_name("get")) == 1


def test_instrument_store_is_idempotent() -> None:
    """Ensure wrapping is skipped without metrics or when already wrapped."""
    metrics, _reader = metrics_harness()
    inner = InMemoryObjectStore()
    assert instrument_store(inner, None) is inner
    wrapped = instrument_store(inner, metrics)
    assert isinstance(wrapped, MetricsObjectStore)
    assert instrument_store(wrapped, metrics) is wrapped
