"""Render result batches as JSON lines, CSV, or a text grid."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time
from enum import StrEnum

import pyarrow as pa

from core_types import Batches
from serde_msgspec import encode_json_lines
from storage.parquet import encode_csv


class OutputFormat(StrEnum):
    """Response body formats."""

    JSON = "json"
    CSV = "csv"
    TEXT = "text"


_MEDIA_TYPES: dict[str, OutputFormat] = {
    "application/json": OutputFormat.JSON,
    "text/csv": OutputFormat.CSV,
    "text/plain": OutputFormat.TEXT,
}

_CONTENT_TYPES: dict[OutputFormat, str] = {
    OutputFormat.JSON: "application/json",
    OutputFormat.CSV: "text/csv; charset=utf-8",
    OutputFormat.TEXT: "text/plain; charset=utf-8",
}


def output_format_for_accept(accept: str | None, default: OutputFormat) -> OutputFormat:
    """Pick the first supported media type listed in an ``Accept`` header.

    Returns
    -------
    OutputFormat
        Matching format, or ``default`` when nothing matches.
    """
    if not accept:
        return default
    for item in accept.split(","):
        media_type = item.split(";", 1)[0].strip().lower()
        fmt = _MEDIA_TYPES.get(media_type)
        if fmt is not None:
            return fmt
    return default


def content_type_for(fmt: OutputFormat) -> str:
    return _CONTENT_TYPES[fmt]


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    return str(value)


def _column_names(batches: Sequence[pa.RecordBatch]) -> list[str]:
    return list(batches[0].schema.names) if batches else []


def format_text_grid(batches: Sequence[pa.RecordBatch]) -> str:
    """Render batches as a ``+---+`` bordered table.

    Returns
    -------
    str
        Grid text ending with a newline, or an empty string without columns.
    """
    names = _column_names(batches)
    if not names:
        return ""
    rows = [
        [_cell_text(row[name]) for name in names]
        for batch in batches
        for row in batch.to_pylist()
    ]
    widths = [len(name) for name in names]
    for row in rows:
        widths = [max(width, len(cell)) for width, cell in zip(widths, row, strict=True)]
    border = "+" + "+".join("-" * (width + 2) for width in widths) + "+"

    def line(cells: Sequence[str]) -> str:
        padded = (f" {cell.ljust(width)} " for cell, width in zip(cells, widths, strict=True))
        return "|" + "|".join(padded) + "|"

    lines = [border, line(names), border]
    lines.extend(line(row) for row in rows)
    lines.append(border)
    return "\n".join(lines) + "\n"


def format_batches(batches: Batches, fmt: OutputFormat) -> str:
    """Render ``batches`` in ``fmt``.

    JSON lines omit null values from each object; CSV carries a header row.

    Returns
    -------
    str
        Rendered body.
    """
    if fmt is OutputFormat.JSON:
        rows = (row for batch in batches for row in batch.to_pylist())
        return encode_json_lines(rows).decode("utf-8")
    if fmt is OutputFormat.CSV:
        if not batches:
            return ""
        return encode_csv(pa.Table.from_batches(batches)).decode("utf-8")
    return format_text_grid(batches)


__all__ = [
    "OutputFormat",
    "content_type_for",
    "format_batches",
    "format_text_grid",
    "output_format_for_accept",
]
