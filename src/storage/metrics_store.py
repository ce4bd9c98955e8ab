"""ObjectStore decorator that counts operation invocations."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from storage.object_store import ListResult, ObjectMeta, ObjectStore

if TYPE_CHECKING:
    from obs.metrics import MetricsRegistry


class MetricsObjectStore:
    """Transparent ObjectStore wrapper recording one counter per operation.

    The counter is incremented before the call is forwarded, so failed calls
    are counted as well. Results and exceptions from the wrapped store pass
    through untouched.
    """

    def __init__(self, inner: ObjectStore, metrics: MetricsRegistry) -> None:
        self.inner = inner
        self.metrics = metrics

    def __repr__(self) -> str:
        return f"MetricsObjectStore({self.inner!r})"

    def get(self, location: str) -> bytes:
        self.metrics.record_store_operation("get")
        return self.inner.get(location)

    def get_range(self, location: str, start: int, end: int) -> bytes:
        self.metrics.record_store_operation("get_range")
        return self.inner.get_range(location, start, end)

    def head(self, location: str) -> ObjectMeta:
        self.metrics.record_store_operation("head")
        return self.inner.head(location)

    def put(self, location: str, data: bytes) -> ObjectMeta:
        self.metrics.record_store_operation("put")
        return self.inner.put(location, data)

    def put_multipart(self, location: str, parts: Iterable[bytes]) -> ObjectMeta:
        self.metrics.record_store_operation("put_multipart")
        return self.inner.put_multipart(location, parts)

    def delete(self, location: str) -> None:
        self.metrics.record_store_operation("delete")
        return self.inner.delete(location)

    def list(self, prefix: str) -> list[ObjectMeta]:
        self.metrics.record_store_operation("list")
        return self.inner.list(prefix)

    def list_with_delimiter(self, prefix: str) -> ListResult:
        self.metrics.record_store_operation("list_with_delimiter")
        return self.inner.list_with_delimiter(prefix)

    def copy(self, source: str, destination: str) -> None:
        self.metrics.record_store_operation("copy")
        return self.inner.copy(source, destination)

    def copy_if_not_exists(self, source: str, destination: str) -> None:
        self.metrics.record_store_operation("copy_if_not_exists")
        return self.inner.copy_if_not_exists(source, destination)


def instrument_store(store: ObjectStore, metrics: MetricsRegistry | None) -> ObjectStore:
    """Wrap ``store`` with operation counters when a registry is supplied.

    Returns
    -------
    ObjectStore
        The instrumented store, or ``store`` unchanged without metrics.
    """
    if metrics is None or isinstance(store, MetricsObjectStore):
        return store
    return MetricsObjectStore(store, metrics)


__all__ = ["MetricsObjectStore", "instrument_store"]
