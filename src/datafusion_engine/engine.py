"""Query engine interface and its DataFusion implementation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Protocol, runtime_checkable
from urllib.parse import urlparse

import pyarrow as pa
from datafusion import SessionConfig, SessionContext
from datafusion.object_store import AmazonS3, GoogleCloud

from core.errors import ConfigError, QueryExecutionError
from core_types import Batches

_LOGGER = logging.getLogger(__name__)

PARQUET_EXTENSION = ".parquet"
PARTITION_COLUMN_TYPE = pa.string()


@runtime_checkable
class QueryEngine(Protocol):
    """Engine capabilities used by registration, serving, and export."""

    def register_listing_table(
        self,
        name: str,
        location: str,
        schema: pa.Schema,
        partitions: Sequence[str],
    ) -> None:
        """Register a listing table, replacing any table with the same name."""
        ...

    def register_record_batches(self, name: str, batches: Batches) -> None:
        """Register in-memory batches, replacing any table with the same name."""
        ...

    def register_object_store(self, root: str) -> None:
        """Make a remote root readable by the engine."""
        ...

    def deregister_table(self, name: str) -> None:
        """Remove a table when present."""
        ...

    def table_names(self) -> list[str]:
        """Return registered table names in sorted order."""
        ...

    def row_count(self, name: str) -> int:
        """Return the number of rows in a registered table."""
        ...

    def execute(self, sql: str) -> Batches:
        """Plan and collect a SQL query."""
        ...


def _object_store_for(scheme: str, bucket: str) -> AmazonS3 | GoogleCloud:
    if scheme in {"s3", "s3a"}:
        return AmazonS3(bucket_name=bucket)
    if scheme in {"gs", "gcs"}:
        return GoogleCloud(bucket_name=bucket)
    msg = f"Unsupported object store scheme {scheme!r}."
    raise ConfigError(msg, literal=scheme)


class DataFusionEngine:
    """QueryEngine over a single ``datafusion.SessionContext``.

    Registered names are tracked here so listing tables and in-memory tables
    share one namespace and re-registration replaces by name.
    """

    def __init__(self, ctx: SessionContext | None = None) -> None:
        self.ctx = ctx or SessionContext(SessionConfig().with_information_schema(enabled=True))
        self._tables: dict[str, str] = {}
        self._object_stores: set[str] = set()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"DataFusionEngine(tables={sorted(self._tables)})"

    def register_listing_table(
        self,
        name: str,
        location: str,
        schema: pa.Schema,
        partitions: Sequence[str],
    ) -> None:
        with self._lock:
            self._deregister_locked(name)
            self.ctx.register_listing_table(
                name,
                location,
                table_partition_cols=[(column, PARTITION_COLUMN_TYPE) for column in partitions],
                file_extension=PARQUET_EXTENSION,
                schema=schema,
            )
            self._tables[name] = location

    def register_record_batches(self, name: str, batches: Batches) -> None:
        with self._lock:
            self._deregister_locked(name)
            self.ctx.register_record_batches(name, [list(batches)])
            self._tables[name] = "memory"

    def register_object_store(self, root: str) -> None:
        parsed = urlparse(root)
        scheme = parsed.scheme.lower()
        if scheme in {"", "file"}:
            return
        key = f"{scheme}://{parsed.netloc}"
        with self._lock:
            if key in self._object_stores:
                return
            store = _object_store_for(scheme, parsed.netloc)
            self.ctx.register_object_store(f"{scheme}://", store, None)
            self._object_stores.add(key)
        _LOGGER.info("Registered object store for %s", key)

    def deregister_table(self, name: str) -> None:
        with self._lock:
            self._deregister_locked(name)

    def _deregister_locked(self, name: str) -> None:
        if self._tables.pop(name, None) is not None:
            self.ctx.deregister_table(name)

    def table_names(self) -> list[str]:
        with self._lock:
            return sorted(self._tables)

    def row_count(self, name: str) -> int:
        try:
            return self.ctx.table(name).count()
        except Exception as exc:
            msg = f"Failed to count rows of table {name!r}: {exc}"
            raise QueryExecutionError(msg, stage="execute") from exc

    def execute(self, sql: str) -> Batches:
        """Plan and collect ``sql``.

        An empty result still yields one zero-row batch so callers keep the
        result schema.

        Returns
        -------
        list[pyarrow.RecordBatch]
            Collected result batches.

        Raises
        ------
        QueryExecutionError
            Raised with ``stage="plan"`` when the SQL is rejected and
            ``stage="execute"`` when collection fails.
        """
        try:
            df = self.ctx.sql(sql)
        except Exception as exc:
            msg = f"{exc}"
            raise QueryExecutionError(msg, stage="plan") from exc
        try:
            batches = df.collect()
        except Exception as exc:
            msg = f"{exc}"
            raise QueryExecutionError(msg, stage="execute") from exc
        if not batches:
            schema = df.schema()
            return [pa.RecordBatch.from_pylist([], schema=schema)]
        return batches


__all__ = [
    "PARQUET_EXTENSION",
    "PARTITION_COLUMN_TYPE",
    "DataFusionEngine",
    "QueryEngine",
]
