"""Run one SQL statement against registered tables and print the result."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Annotated

from cyclopts import Parameter

from cli.exit_codes import ExitCode
from cli.groups import output_group, tables_group
from core.errors import ConfigError
from datafusion_engine.engine import DataFusionEngine
from datafusion_engine.schema_inference import DEFAULT_SAMPLE_FILES
from serve.formatting import OutputFormat, format_batches
from tables.registration import register_tables
from tables.spec import apply_partition_overrides, parse_partition_override, parse_table_spec


@dataclass(frozen=True)
class QueryOptions:
    """CLI options for ``plano query``."""

    table_spec: Annotated[
        tuple[str, ...],
        Parameter(
            name="--table-spec",
            help="Table as NAME=ROOT[:COL1,COL2,...] (repeatable).",
            group=tables_group,
        ),
    ] = ()
    table_partitions: Annotated[
        tuple[str, ...],
        Parameter(
            name="--table-partitions",
            help="Partition columns as NAME=COL1,COL2 (repeatable, wins over --table-spec).",
            group=tables_group,
        ),
    ] = ()
    sample_files: Annotated[
        int,
        Parameter(
            name="--sample-files",
            help="Parquet footers sampled per table for schema inference.",
            group=tables_group,
        ),
    ] = DEFAULT_SAMPLE_FILES
    output_format: Annotated[
        OutputFormat,
        Parameter(
            name="--format",
            help="Rendering of the result.",
            group=output_group,
        ),
    ] = OutputFormat.TEXT


_DEFAULT_QUERY_OPTIONS = QueryOptions()


def query_command(
    *sql: str,
    options: Annotated[QueryOptions, Parameter(name="*")] = _DEFAULT_QUERY_OPTIONS,
) -> int:
    """Execute SQL once and write the formatted result to stdout.

    Returns
    -------
    int
        Exit status code.

    Raises
    ------
    ConfigError
        Raised when no SQL text is given.
    """
    text = " ".join(sql).strip()
    if not text:
        msg = "No SQL statement given."
        raise ConfigError(msg)
    specs = apply_partition_overrides(
        [parse_table_spec(value) for value in options.table_spec],
        dict(parse_partition_override(value) for value in options.table_partitions),
    )
    engine = DataFusionEngine()
    register_tables(engine, specs, sample_files=options.sample_files)
    batches = engine.execute(text)
    sys.stdout.write(format_batches(batches, options.output_format))
    return ExitCode.SUCCESS


__all__ = ["QueryOptions", "query_command"]
