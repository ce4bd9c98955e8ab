"""Export a relational table into a partitioned directory tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from cyclopts import Parameter

from cli.exit_codes import ExitCode
from cli.groups import output_group, source_group
from export.partitions import ExistingPartitionPolicy
from export.pipeline import DEFAULT_OUTPUT_DIR, ExportRequest, run_export
from relational.postgres import DATABASE_URL_ENV, PostgresSource
from storage.parquet import FileFormat

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportOptions:
    """CLI options for ``plano export``."""

    table: Annotated[
        str,
        Parameter(
            name=["--table", "-t"],
            help="Relational table to export.",
            group=source_group,
        ),
    ]
    output_dir: Annotated[
        str,
        Parameter(
            name=["--output-dir", "-o"],
            help="Directory or object store URI receiving the table directory.",
            group=output_group,
        ),
    ] = DEFAULT_OUTPUT_DIR
    partition_by: Annotated[
        tuple[str, ...],
        Parameter(
            name=["--partition-by", "-p"],
            help="Partition key (repeatable): a column name or year, month, day, hour.",
            group=output_group,
        ),
    ] = ()
    timestamp_column: Annotated[
        str | None,
        Parameter(
            name="--timestamp-col",
            help="Timestamp column used for year, month, day, and hour keys.",
            group=output_group,
        ),
    ] = None
    file_format: Annotated[
        FileFormat,
        Parameter(
            name="--format",
            help="File format written for each partition.",
            group=output_group,
        ),
    ] = FileFormat.PARQUET
    append: Annotated[
        bool,
        Parameter(
            name="--append",
            help="Add a new part file to existing partitions instead of replacing them.",
            group=output_group,
        ),
    ] = False
    print_batch: Annotated[
        bool,
        Parameter(
            name="--print",
            help="Print the fetched rows as a text table.",
            group=output_group,
        ),
    ] = False
    limit: Annotated[
        int | None,
        Parameter(
            name="--limit",
            help="Fetch at most this many rows.",
            group=source_group,
        ),
    ] = None
    database_url: Annotated[
        str | None,
        Parameter(
            name="--database-url",
            help="Relational source connection string.",
            env_var=DATABASE_URL_ENV,
            group=source_group,
        ),
    ] = None


def request_from_options(options: ExportOptions) -> ExportRequest:
    """Build the export request described by ``options``.

    Returns
    -------
    ExportRequest
        Request for ``run_export``.
    """
    existing = ExistingPartitionPolicy.APPEND if options.append else ExistingPartitionPolicy.REPLACE
    return ExportRequest(
        table=options.table,
        output_dir=options.output_dir,
        partition_by=options.partition_by,
        timestamp_column=options.timestamp_column,
        file_format=options.file_format,
        existing=existing,
        limit=options.limit,
        print_batch=options.print_batch,
    )


def export_command(options: Annotated[ExportOptions, Parameter(name="*")]) -> int:
    """Fetch a relational table and write it partitioned.

    Returns
    -------
    int
        Exit status code.
    """
    request = request_from_options(options)
    result = run_export(request, PostgresSource(url=options.database_url))
    _LOGGER.info(
        "Exported %d rows of %s into %d files across %d partitions.",
        result.rows_written,
        request.table,
        len(result.files),
        result.partition_count,
    )
    return ExitCode.SUCCESS


__all__ = ["ExportOptions", "export_command", "request_from_options"]
