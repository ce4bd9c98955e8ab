"""Relational sources feeding exports and the relational route."""

from relational.postgres import PostgresSource, RelationalSource

__all__ = ["PostgresSource", "RelationalSource"]
