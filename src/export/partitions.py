"""Group a materialized batch by partition keys and write one file per group.

Keys are ``column=value`` segments joined with ``/`` in the requested order.
The reserved keywords ``year``, ``month``, ``day`` and ``hour`` decompose the
designated timestamp column instead of naming a column.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import pyarrow as pa
import pyarrow.compute as pc

from core.errors import ConfigError, ExportError
from storage.metrics_store import instrument_store
from storage.object_store import ObjectStore, store_for_uri, store_path
from storage.parquet import FileFormat, ParquetWriteOptions, write_table_to_store
from tables.spec import normalize_root

if TYPE_CHECKING:
    from obs.metrics import MetricsRegistry

_LOGGER = logging.getLogger(__name__)

RESERVED_TIME_KEYS: tuple[str, ...] = ("year", "month", "day", "hour")
NULL_PARTITION_VALUE = "__HIVE_DEFAULT_PARTITION__"
PART_FILE_TEMPLATE = "part-{index:05d}.{extension}"

_PART_FILE_PATTERN = re.compile(r"^part-(\d{5})\.")


class ExistingPartitionPolicy(StrEnum):
    """What a re-run does when a partition directory already holds files."""

    REPLACE = "replace"
    APPEND = "append"


@dataclass(frozen=True)
class ExportResult:
    """Files written by one export run."""

    files: tuple[str, ...]
    rows_written: int

    @property
    def partition_count(self) -> int:
        return len(self.files)


def validate_partition_keys(
    partition_columns: Sequence[str],
    timestamp_column: str | None,
    *,
    schema: pa.Schema | None = None,
) -> None:
    """Reject partition instructions that cannot be applied.

    Parameters
    ----------
    partition_columns
        Requested partition keys in order.
    timestamp_column
        Column decomposed by the reserved time keys.
    schema
        When given, also check that referenced columns exist.

    Raises
    ------
    ConfigError
        Raised when a reserved time key is used without a timestamp column,
        a key is repeated, or a referenced column is missing from ``schema``.
    """
    if timestamp_column is None:
        for key in partition_columns:
            if key in RESERVED_TIME_KEYS:
                msg = f"Reserved partition key {key!r} requires a timestamp column."
                raise ConfigError(msg, literal=key)
    duplicates = sorted({key for key in partition_columns if partition_columns.count(key) > 1})
    if duplicates:
        msg = f"Duplicate partition keys: {', '.join(duplicates)}."
        raise ConfigError(msg)
    if schema is None:
        return
    names = set(schema.names)
    uses_time = any(key in RESERVED_TIME_KEYS for key in partition_columns)
    if uses_time and timestamp_column not in names:
        msg = f"Timestamp column {timestamp_column!r} is not in the schema."
        raise ConfigError(msg, literal=timestamp_column)
    for key in partition_columns:
        if key in RESERVED_TIME_KEYS and timestamp_column is not None:
            continue
        if key not in names:
            msg = f"Partition column {key!r} is not in the schema."
            raise ConfigError(msg, literal=key)


def build_column_index_map(schema: pa.Schema) -> dict[str, int]:
    """Map each field name of ``schema`` to its position.

    Returns
    -------
    dict[str, int]
        Field name to column index.
    """
    return {schema_field.name: index for index, schema_field in enumerate(schema)}


def _timestamp_values(column: pa.Array, name: str) -> pa.Array:
    dtype = column.type
    if pa.types.is_timestamp(dtype):
        if dtype.tz is not None:
            return column.cast(pa.timestamp(dtype.unit, tz="UTC"))
        return column
    if pa.types.is_date(dtype):
        return column.cast(pa.timestamp("ms"))
    msg = f"Timestamp column {name!r} has non-temporal type {dtype}."
    raise ExportError(msg)


def _time_component(values: pa.Array, key: str) -> list[str]:
    if key == "year":
        return [str(value) for value in pc.year(values).to_pylist()]
    extract = {"month": pc.month, "day": pc.day, "hour": pc.hour}[key]
    return [f"{value:02d}" for value in extract(values).to_pylist()]


def _column_text(column: pa.Array, name: str) -> list[str]:
    if not (pa.types.is_string(column.type) or pa.types.is_large_string(column.type)):
        try:
            column = column.cast(pa.string())
        except (pa.ArrowInvalid, pa.ArrowNotImplementedError) as exc:
            msg = f"Partition column {name!r} of type {column.type} has no text form."
            raise ExportError(msg) from exc
    return [NULL_PARTITION_VALUE if value is None else value for value in column.to_pylist()]


def _segment_values(
    batch: pa.RecordBatch,
    key: str,
    timestamp_column: str | None,
    index_map: dict[str, int],
) -> list[str]:
    if key in RESERVED_TIME_KEYS:
        if timestamp_column is None:
            msg = f"Reserved partition key {key!r} requires a timestamp column."
            raise ConfigError(msg, literal=key)
        index = index_map.get(timestamp_column)
        if index is None:
            msg = f"Timestamp column {timestamp_column!r} is not in the schema."
            raise ConfigError(msg, literal=timestamp_column)
        column = batch.column(index)
        if column.null_count:
            msg = f"Timestamp column {timestamp_column!r} contains null values."
            raise ExportError(msg)
        return _time_component(_timestamp_values(column, timestamp_column), key)
    index = index_map.get(key)
    if index is None:
        msg = f"Partition column {key!r} is not in the schema."
        raise ConfigError(msg, literal=key)
    return _column_text(batch.column(index), key)


def _partition_keys(
    batch: pa.RecordBatch,
    partition_columns: Sequence[str],
    timestamp_column: str | None,
    index_map: dict[str, int],
) -> list[str]:
    columns = [
        [f"{key}={value}" for value in _segment_values(batch, key, timestamp_column, index_map)]
        for key in partition_columns
    ]
    return ["/".join(segments) for segments in zip(*columns, strict=True)]


def partition_key_for_row(
    batch: pa.RecordBatch,
    row: int,
    partition_columns: Sequence[str],
    timestamp_column: str | None,
    index_map: dict[str, int],
) -> str:
    """Build the partition key for a single row.

    Returns
    -------
    str
        Key such as ``year=2024/month=03``; empty without partition columns.
    """
    if not partition_columns:
        return ""
    return _partition_keys(batch.slice(row, 1), partition_columns, timestamp_column, index_map)[0]


def group_rows_by_partition(
    batch: pa.RecordBatch,
    partition_columns: Sequence[str],
    timestamp_column: str | None,
    index_map: dict[str, int],
) -> dict[str, list[int]]:
    """Bucket every row index of ``batch`` under its partition key.

    Every row lands in exactly one group; groups appear in first-seen order.

    Returns
    -------
    dict[str, list[int]]
        Partition key to ascending row indices.
    """
    if not partition_columns:
        return {"": list(range(batch.num_rows))} if batch.num_rows else {}
    groups: dict[str, list[int]] = {}
    keys = _partition_keys(batch, partition_columns, timestamp_column, index_map)
    for row, key in enumerate(keys):
        groups.setdefault(key, []).append(row)
    return groups


def _conform(batch: pa.RecordBatch, schema: pa.Schema) -> pa.RecordBatch:
    arrays = []
    for schema_field in schema:
        column = batch.column(batch.schema.get_field_index(schema_field.name))
        if column.type != schema_field.type:
            column = column.cast(schema_field.type)
        arrays.append(column)
    return pa.RecordBatch.from_arrays(arrays, schema=schema)


def gather_rows(batch: pa.RecordBatch, indices: Sequence[int], schema: pa.Schema) -> pa.RecordBatch:
    """Return the rows at ``indices`` in ``schema``'s column order and types.

    Returns
    -------
    pyarrow.RecordBatch
        Gathered sub-batch.
    """
    taken = batch.take(pa.array(indices, type=pa.uint32()))
    return _conform(taken, schema)


def _next_part_index(store: ObjectStore, directory: str) -> int:
    try:
        listing = store.list_with_delimiter(directory)
    except FileNotFoundError:
        return 0
    indices = []
    for meta in listing.objects:
        match = _PART_FILE_PATTERN.match(meta.location.rsplit("/", 1)[-1])
        if match is not None:
            indices.append(int(match.group(1)))
    return max(indices) + 1 if indices else 0


def partition_file_location(
    store: ObjectStore,
    base: str,
    table_name: str,
    key: str,
    *,
    file_format: FileFormat,
    existing: ExistingPartitionPolicy,
) -> str:
    """Resolve the file a partition is written to.

    Returns
    -------
    str
        ``base/table/key/part-NNNNN.ext``, or ``base/table.ext`` for the
        empty key.
    """
    if not key:
        return f"{base}/{table_name}.{file_format.extension}"
    directory = f"{base}/{table_name}/{key}"
    index = 0
    if existing is ExistingPartitionPolicy.APPEND:
        index = _next_part_index(store, directory)
    name = PART_FILE_TEMPLATE.format(index=index, extension=file_format.extension)
    return f"{directory}/{name}"


def write_partition(
    key: str,
    indices: Sequence[int],
    batch: pa.RecordBatch,
    schema: pa.Schema,
    store: ObjectStore,
    base: str,
    table_name: str,
    *,
    file_format: FileFormat = FileFormat.PARQUET,
    existing: ExistingPartitionPolicy = ExistingPartitionPolicy.REPLACE,
    opts: ParquetWriteOptions | None = None,
) -> str:
    """Gather one group and write it as a single file.

    Returns
    -------
    str
        Location of the written file.

    Raises
    ------
    ExportError
        Raised when gathering or writing fails.
    """
    location = partition_file_location(
        store,
        base,
        table_name,
        key,
        file_format=file_format,
        existing=existing,
    )
    try:
        subset = gather_rows(batch, indices, schema)
        write_table_to_store(store, location, subset, file_format=file_format, opts=opts)
    except (OSError, pa.ArrowException) as exc:
        msg = f"Failed to write partition {key or table_name!r} to {location!r}: {exc}"
        raise ExportError(msg) from exc
    _LOGGER.info("Wrote %d rows to %s", len(indices), location)
    return location


def export_partitioned(
    batch: pa.RecordBatch,
    schema: pa.Schema,
    partition_columns: Sequence[str],
    timestamp_column: str | None,
    output_root: str,
    table_name: str,
    *,
    file_format: FileFormat = FileFormat.PARQUET,
    existing: ExistingPartitionPolicy = ExistingPartitionPolicy.REPLACE,
    store: ObjectStore | None = None,
    metrics: MetricsRegistry | None = None,
    opts: ParquetWriteOptions | None = None,
) -> ExportResult:
    """Partition ``batch`` and write one file per partition key.

    Grouping completes in memory before any file is written. Files are then
    written sequentially; the first failure aborts the run and files already
    written are left in place.

    Parameters
    ----------
    batch
        Fully materialized rows to export.
    schema
        Output schema; column order and types of every written file.
    partition_columns
        Partition keys in directory order.
    timestamp_column
        Column decomposed by ``year``/``month``/``day``/``hour`` keys.
    output_root
        Local directory or URI receiving the output.
    table_name
        Directory (or file stem) named after the exported table.
    file_format
        Output file format.
    existing
        Whether re-runs replace ``part-00000`` or add the next part file.
    store
        Store to write through; resolved from ``output_root`` when omitted.
    metrics
        Registry counting store calls, files, and rows.
    opts
        Parquet writer options.

    Returns
    -------
    ExportResult
        Written file locations and total rows.

    Raises
    ------
    ConfigError
        Raised before any row is read when partition instructions are invalid.
    ExportError
        Raised when a key cannot be computed or a write fails.
    """
    validate_partition_keys(partition_columns, timestamp_column, schema=schema)
    root = normalize_root(output_root)
    if store is None:
        resolved, base = store_for_uri(root)
    else:
        resolved, base = store, store_path(root)
    base = base.rstrip("/")
    writer_store = instrument_store(resolved, metrics)
    index_map = build_column_index_map(batch.schema)
    groups = group_rows_by_partition(batch, partition_columns, timestamp_column, index_map)
    if not partition_columns and not groups:
        groups = {"": []}
    files: list[str] = []
    rows_written = 0
    for key, indices in groups.items():
        location = write_partition(
            key,
            indices,
            batch,
            schema,
            writer_store,
            base,
            table_name,
            file_format=file_format,
            existing=existing,
            opts=opts,
        )
        files.append(location)
        rows_written += len(indices)
        if metrics is not None:
            metrics.record_export_file(len(indices), file_format=file_format.value)
    _LOGGER.info(
        "Exported %d rows of %s into %d files under %s",
        rows_written,
        table_name,
        len(files),
        root,
    )
    return ExportResult(files=tuple(files), rows_written=rows_written)


__all__ = [
    "NULL_PARTITION_VALUE",
    "RESERVED_TIME_KEYS",
    "ExistingPartitionPolicy",
    "ExportResult",
    "build_column_index_map",
    "export_partitioned",
    "gather_rows",
    "group_rows_by_partition",
    "partition_file_location",
    "partition_key_for_row",
    "validate_partition_keys",
    "write_partition",
]
