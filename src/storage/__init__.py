"""Object stores and file encoders for table data."""

from storage.metrics_store import MetricsObjectStore, instrument_store
from storage.object_store import (
    ArrowObjectStore,
    InMemoryObjectStore,
    ObjectMeta,
    ObjectStore,
    store_for_uri,
)
from storage.parquet import FileFormat, write_table_to_store

__all__ = [
    "ArrowObjectStore",
    "FileFormat",
    "InMemoryObjectStore",
    "MetricsObjectStore",
    "ObjectMeta",
    "ObjectStore",
    "instrument_store",
    "store_for_uri",
    "write_table_to_store",
]
