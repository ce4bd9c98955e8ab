"""Batch job: fetch a relational table and export it partitioned."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

from export.partitions import (
    ExistingPartitionPolicy,
    ExportResult,
    export_partitioned,
    validate_partition_keys,
)
from serde_msgspec import StructBaseStrict
from serve.formatting import format_text_grid
from storage.parquet import FileFormat

if TYPE_CHECKING:
    from obs.metrics import MetricsRegistry
    from relational.postgres import RelationalSource
    from storage.object_store import ObjectStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "/tmp"


class ExportRequest(StructBaseStrict, frozen=True):
    """Parameters of one export run."""

    table: str
    output_dir: str = DEFAULT_OUTPUT_DIR
    partition_by: tuple[str, ...] = ()
    timestamp_column: str | None = None
    file_format: FileFormat = FileFormat.PARQUET
    existing: ExistingPartitionPolicy = ExistingPartitionPolicy.REPLACE
    limit: int | None = None
    print_batch: bool = False


def run_export(
    request: ExportRequest,
    source: RelationalSource,
    *,
    store: ObjectStore | None = None,
    metrics: MetricsRegistry | None = None,
    out: TextIO | None = None,
) -> ExportResult:
    """Validate, fetch, partition, and write one table.

    Partition instructions are validated before the source is queried.

    Returns
    -------
    ExportResult
        Files written and rows exported.
    """
    validate_partition_keys(request.partition_by, request.timestamp_column)
    _LOGGER.info("Fetching table %s", request.table)
    batch = source.load_table(request.table, limit=request.limit)
    result = export_partitioned(
        batch,
        batch.schema,
        request.partition_by,
        request.timestamp_column,
        request.output_dir,
        request.table,
        file_format=request.file_format,
        existing=request.existing,
        store=store,
        metrics=metrics,
    )
    if request.print_batch:
        (out or sys.stdout).write(format_text_grid([batch]))
    return result


__all__ = ["DEFAULT_OUTPUT_DIR", "ExportRequest", "run_export"]
