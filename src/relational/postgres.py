"""PostgreSQL relational source producing Arrow batches."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import psycopg
import pyarrow as pa
from psycopg import sql

from core.errors import ConfigError, RelationalSourceError, SchemaError
from utils.env_utils import env_value

_LOGGER = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"

_COLUMNS_QUERY = """
    SELECT column_name, data_type, is_nullable
    FROM information_schema.columns
    WHERE table_name = %s
    ORDER BY ordinal_position
"""

# Numeric types map to float64, which is lossy for wide decimals.
_TYPE_MAP: dict[str, pa.DataType] = {
    "integer": pa.int32(),
    "int4": pa.int32(),
    "bigint": pa.int64(),
    "int8": pa.int64(),
    "smallint": pa.int16(),
    "int2": pa.int16(),
    "text": pa.string(),
    "character varying": pa.string(),
    "varchar": pa.string(),
    "boolean": pa.bool_(),
    "timestamp without time zone": pa.timestamp("us"),
    "timestamp with time zone": pa.timestamp("us", tz="UTC"),
    "date": pa.date32(),
    "numeric": pa.float64(),
    "decimal": pa.float64(),
    "double precision": pa.float64(),
    "real": pa.float64(),
}


class RelationalSource(Protocol):
    """Source of whole tables as Arrow batches."""

    def load_table(self, table: str, *, limit: int | None = None) -> pa.RecordBatch:
        """Return the rows of ``table`` typed by its inferred schema."""
        ...


def arrow_type_for(sql_type: str, *, column: str) -> pa.DataType:
    """Map an ``information_schema`` data type name to an Arrow type.

    Returns
    -------
    pyarrow.DataType
        Arrow type used for the column.

    Raises
    ------
    SchemaError
        Raised for SQL types without a mapping.
    """
    dtype = _TYPE_MAP.get(sql_type.lower())
    if dtype is None:
        msg = f"Unsupported SQL type for {column!r}: {sql_type}."
        raise SchemaError(msg, column=column, data_type=sql_type)
    return dtype


def connect(url: str | None = None) -> psycopg.Connection:
    """Open a connection using ``url`` or ``DATABASE_URL``.

    Returns
    -------
    psycopg.Connection
        Open connection.

    Raises
    ------
    ConfigError
        Raised when no connection string is available.
    RelationalSourceError
        Raised when the database cannot be reached.
    """
    resolved = url or env_value(DATABASE_URL_ENV)
    if resolved is None:
        msg = f"{DATABASE_URL_ENV} environment variable not set."
        raise ConfigError(msg)
    try:
        return psycopg.connect(resolved)
    except psycopg.Error as exc:
        msg = f"Failed to connect to the relational source: {exc}"
        raise RelationalSourceError(msg) from exc


def infer_arrow_schema(conn: psycopg.Connection, table: str) -> pa.Schema:
    """Infer an Arrow schema for ``table`` from ``information_schema``.

    Returns
    -------
    pyarrow.Schema
        Fields in ordinal order with nullability from the catalog.

    Raises
    ------
    RelationalSourceError
        Raised when the table has no columns or the catalog query fails.
    """
    try:
        with conn.cursor() as cursor:
            cursor.execute(_COLUMNS_QUERY, (table,))
            rows = cursor.fetchall()
    except psycopg.Error as exc:
        msg = f"Failed to read columns of {table!r}: {exc}"
        raise RelationalSourceError(msg) from exc
    if not rows:
        msg = f"Table {table!r} not found in the relational source."
        raise RelationalSourceError(msg)
    fields = [
        pa.field(name, arrow_type_for(sql_type, column=name), nullable=is_nullable == "YES")
        for name, sql_type, is_nullable in rows
    ]
    return pa.schema(fields)


def _select_query(table: str, columns: Sequence[str], limit: int | None) -> sql.Composed:
    query = sql.SQL("SELECT {columns} FROM {table}").format(
        columns=sql.SQL(", ").join(sql.Identifier(name) for name in columns),
        table=sql.Identifier(table),
    )
    if limit is not None:
        query = query + sql.SQL(" LIMIT {limit}").format(limit=sql.Literal(limit))
    return query


def _column_array(values: Sequence[object], field: pa.Field) -> pa.Array:
    if pa.types.is_floating(field.type):
        values = [float(value) if isinstance(value, Decimal) else value for value in values]
    try:
        return pa.array(values, type=field.type)
    except (pa.ArrowInvalid, pa.ArrowTypeError, OverflowError) as exc:
        msg = f"Column {field.name!r} holds values that do not fit {field.type}: {exc}"
        raise SchemaError(msg, column=field.name, data_type=str(field.type)) from exc


def fetch_table(
    conn: psycopg.Connection,
    table: str,
    schema: pa.Schema,
    *,
    limit: int | None = None,
) -> pa.RecordBatch:
    """Select the schema's columns from ``table`` into one batch.

    Returns
    -------
    pyarrow.RecordBatch
        Rows typed by ``schema``.

    Raises
    ------
    RelationalSourceError
        Raised when the select fails.
    """
    query = _select_query(table, schema.names, limit)
    try:
        with conn.cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
    except psycopg.Error as exc:
        msg = f"Failed to fetch table {table!r}: {exc}"
        raise RelationalSourceError(msg) from exc
    columns: list[Sequence[object]] = (
        [list(values) for values in zip(*rows, strict=True)] if rows else [[] for _ in schema]
    )
    arrays = [
        _column_array(values, field) for values, field in zip(columns, schema, strict=True)
    ]
    _LOGGER.info("Fetched %d rows from %s", len(rows), table)
    return pa.RecordBatch.from_arrays(arrays, schema=schema)


@dataclass(frozen=True)
class PostgresSource:
    """RelationalSource backed by PostgreSQL.

    ``connection_factory`` replaces :func:`connect` when given.
    """

    url: str | None = None
    connection_factory: Callable[[], psycopg.Connection] | None = None

    def connect(self) -> psycopg.Connection:
        if self.connection_factory is not None:
            return self.connection_factory()
        return connect(self.url)

    def load_table(self, table: str, *, limit: int | None = None) -> pa.RecordBatch:
        """Infer ``table``'s schema and fetch its rows over one connection.

        Returns
        -------
        pyarrow.RecordBatch
            Fetched rows.
        """
        with self.connect() as conn:
            schema = infer_arrow_schema(conn, table)
            return fetch_table(conn, table, schema, limit=limit)


__all__ = [
    "DATABASE_URL_ENV",
    "PostgresSource",
    "RelationalSource",
    "arrow_type_for",
    "connect",
    "fetch_table",
    "infer_arrow_schema",
]
