"""Partition-aware registration of Parquet listing tables."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pyarrow as pa

from core.errors import EmptyFileSetError, SchemaError
from datafusion_engine.engine import PARQUET_EXTENSION, QueryEngine
from datafusion_engine.schema_inference import (
    DEFAULT_SAMPLE_FILES,
    clean_schema,
    infer_file_schema,
)
from storage.metrics_store import instrument_store
from storage.object_store import ObjectMeta, ObjectStore, store_for_uri, store_path
from tables.spec import TableSpec, normalize_root
from utils.uri import is_uri

if TYPE_CHECKING:
    from obs.metrics import MetricsRegistry

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableRegistration:
    """Outcome of one successful table registration."""

    name: str
    location: str
    partitions: tuple[str, ...]
    schema: pa.Schema
    file_count: int


@dataclass(frozen=True)
class RegistrationReport:
    """Summary of a batch of registrations."""

    registered: tuple[TableRegistration, ...] = ()
    skipped: tuple[tuple[str, str], ...] = ()

    @property
    def registered_names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.registered)

    @property
    def skipped_names(self) -> tuple[str, ...]:
        return tuple(name for name, _reason in self.skipped)


def _is_hidden(segment: str) -> bool:
    return segment.startswith(("_", "."))


def list_data_files(store: ObjectStore, path: str) -> list[ObjectMeta]:
    """List Parquet data files below ``path``.

    Files inside hidden or underscore-prefixed directories, and files with such
    names, are ignored.

    Returns
    -------
    list[ObjectMeta]
        Matching files sorted by location.
    """
    base = path.rstrip("/")
    prefix = f"{base}/" if base else ""
    files: list[ObjectMeta] = []
    for meta in store.list(path):
        relative = meta.location.removeprefix(prefix)
        if not relative.endswith(PARQUET_EXTENSION):
            continue
        if any(_is_hidden(segment) for segment in relative.split("/")):
            continue
        files.append(meta)
    return sorted(files, key=lambda meta: meta.location)


def register_table(
    engine: QueryEngine,
    spec: TableSpec,
    *,
    store: ObjectStore | None = None,
    metrics: MetricsRegistry | None = None,
    sample_files: int = DEFAULT_SAMPLE_FILES,
) -> TableRegistration:
    """Register ``spec`` as a listing table with a reconciled schema.

    Parameters
    ----------
    engine
        Engine receiving the table.
    spec
        Table name, root, and declared partition columns.
    store
        Store to list and sample from; resolved from the root when omitted.
    metrics
        Registry used to count storage operations made while registering.
    sample_files
        Maximum number of Parquet footers read for schema inference.

    Returns
    -------
    TableRegistration
        Registered location, partitions, and clean schema.

    Raises
    ------
    EmptyFileSetError
        Raised when no Parquet files exist under an existing root.
    FileNotFoundError
        Raised unchanged by the store when the root does not exist.
    """
    root = normalize_root(spec.root)
    if store is None:
        resolved, path = store_for_uri(root)
    else:
        resolved, path = store, store_path(root)
    instrumented = instrument_store(resolved, metrics)
    files = list_data_files(instrumented, path)
    if not files:
        raise EmptyFileSetError(root, extension=PARQUET_EXTENSION)
    raw = infer_file_schema(instrumented, files, sample_files=sample_files)
    schema = clean_schema(raw, spec.partitions)
    collisions = sorted(set(raw.names) & set(spec.partitions))
    if collisions:
        _LOGGER.info(
            "Dropped file columns %s of table %s in favor of partition columns.",
            ", ".join(collisions),
            spec.name,
        )
    if is_uri(root):
        engine.register_object_store(root)
    engine.register_listing_table(spec.name, root, schema, spec.partitions)
    _LOGGER.info(
        "Registered table %s at %s (%d files, partitions: %s).",
        spec.name,
        root,
        len(files),
        ", ".join(spec.partitions) or "none",
    )
    return TableRegistration(
        name=spec.name,
        location=root,
        partitions=spec.partitions,
        schema=schema,
        file_count=len(files),
    )


def register_tables(
    engine: QueryEngine,
    specs: Iterable[TableSpec],
    *,
    store: ObjectStore | None = None,
    metrics: MetricsRegistry | None = None,
    sample_files: int = DEFAULT_SAMPLE_FILES,
) -> RegistrationReport:
    """Register every spec, skipping tables without files or with bad schemas.

    I/O errors from listing a root propagate.

    Returns
    -------
    RegistrationReport
        Registered tables and skipped names with reasons.
    """
    registered: list[TableRegistration] = []
    skipped: list[tuple[str, str]] = []
    for spec in specs:
        try:
            registration = register_table(
                engine,
                spec,
                store=store,
                metrics=metrics,
                sample_files=sample_files,
            )
        except EmptyFileSetError as exc:
            _LOGGER.warning("Skipping table %s: %s", spec.name, exc)
            skipped.append((spec.name, str(exc)))
            continue
        except SchemaError as exc:
            _LOGGER.error("Skipping table %s: %s", spec.name, exc)  # noqa: TRY400
            skipped.append((spec.name, str(exc)))
            continue
        registered.append(registration)
    return RegistrationReport(registered=tuple(registered), skipped=tuple(skipped))


__all__ = [
    "RegistrationReport",
    "TableRegistration",
    "list_data_files",
    "register_table",
    "register_tables",
]
