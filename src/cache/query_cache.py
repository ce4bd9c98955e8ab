"""Bounded in-process LRU cache of query results keyed by query text."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING

from core.errors import ConfigError
from core_types import Batches

if TYPE_CHECKING:
    from obs.metrics import MetricsRegistry

_LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_CAPACITY = 100


class QueryCache:
    """Least-recently-used mapping from literal SQL text to result batches.

    Keys are matched exactly; no normalization is applied. The lock guards
    individual operations only and is never held while a query executes, so
    two concurrent misses for the same text may both execute and both store.

    Parameters
    ----------
    capacity
        Maximum number of entries; must be positive.
    metrics
        Registry receiving read/miss counts and capacity/usage gauges.

    Raises
    ------
    ConfigError
        Raised when ``capacity`` is not positive.
    """

    def __init__(self, capacity: int, *, metrics: MetricsRegistry | None = None) -> None:
        if capacity <= 0:
            msg = f"Query cache capacity must be positive, got {capacity}."
            raise ConfigError(msg, literal=str(capacity))
        self._capacity = capacity
        self._entries: OrderedDict[str, Batches] = OrderedDict()
        self._lock = threading.Lock()
        self._metrics = metrics
        if metrics is not None:
            metrics.set_cache_capacity(capacity)
            metrics.set_cache_usage(0)

    def __repr__(self) -> str:
        return f"QueryCache(capacity={self._capacity}, size={len(self)})"

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> Batches | None:
        """Return the cached result for ``key`` and mark it most recent.

        Returns
        -------
        list[pyarrow.RecordBatch] | None
            Cached batches, or None on a miss.
        """
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
        if self._metrics is not None:
            self._metrics.record_cache_read(hit=value is not None)
        if value is not None:
            _LOGGER.debug("Query cache hit for %r", key)
        return value

    def put(self, key: str, value: Batches) -> None:
        """Insert or replace ``key`` as most recent, evicting the oldest on overflow."""
        evicted: str | None = None
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            if len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
            usage = len(self._entries)
        if evicted is not None:
            _LOGGER.debug("Query cache evicted %r", evicted)
        if self._metrics is not None:
            self._metrics.set_cache_usage(usage)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        if self._metrics is not None:
            self._metrics.set_cache_usage(0)


__all__ = ["DEFAULT_CACHE_CAPACITY", "QueryCache"]
