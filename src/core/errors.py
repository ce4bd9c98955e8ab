"""Unified error types for plano surfaces."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Categorize errors by subsystem."""

    GENERIC = "generic"
    CONFIG = "config"
    STORAGE = "storage"
    SCHEMA = "schema"
    DATAFUSION = "datafusion"
    EXPORT = "export"
    RELATIONAL = "relational"


class PlanoError(Exception):
    """Base exception for plano failures."""

    def __init__(self, message: str, *, kind: ErrorKind = ErrorKind.GENERIC) -> None:
        super().__init__(message)
        self.kind = kind


class ConfigError(PlanoError):
    """Raised for malformed configuration detected at startup."""

    def __init__(self, message: str, *, literal: str | None = None) -> None:
        super().__init__(message, kind=ErrorKind.CONFIG)
        self.literal = literal


class EmptyFileSetError(PlanoError):
    """Raised when no data files match a table root."""

    def __init__(self, root: str, *, extension: str) -> None:
        super().__init__(
            f"No {extension} files found under {root!r}.",
            kind=ErrorKind.STORAGE,
        )
        self.root = root
        self.extension = extension


class SchemaError(PlanoError):
    """Raised when a physical schema cannot be registered with the engine."""

    def __init__(
        self,
        message: str,
        *,
        column: str | None = None,
        data_type: str | None = None,
    ) -> None:
        super().__init__(message, kind=ErrorKind.SCHEMA)
        self.column = column
        self.data_type = data_type


class QueryExecutionError(PlanoError):
    """Raised when the query engine fails to plan or execute a query.

    ``stage`` is ``"plan"`` when the SQL text was rejected and ``"execute"``
    when a planned query failed while collecting results.
    """

    def __init__(self, message: str, *, stage: str) -> None:
        super().__init__(message, kind=ErrorKind.DATAFUSION)
        self.stage = stage


class ExportError(PlanoError):
    """Raised when a partitioned export cannot complete."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.EXPORT)


class RelationalSourceError(PlanoError):
    """Raised when the relational source cannot serve a table."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.RELATIONAL)


__all__ = [
    "ConfigError",
    "EmptyFileSetError",
    "ErrorKind",
    "ExportError",
    "PlanoError",
    "QueryExecutionError",
    "RelationalSourceError",
    "SchemaError",
]
