"""Recording fakes for engine and relational source seams."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import pyarrow as pa

from core.errors import QueryExecutionError, RelationalSourceError
from core_types import Batches


@dataclass
class FakeEngine:
    """QueryEngine that records registrations and serves canned results."""

    results: dict[str, Batches] = field(default_factory=dict)
    listing_tables: dict[str, tuple[str, pa.Schema, tuple[str, ...]]] = field(
        default_factory=dict
    )
    memory_tables: dict[str, Batches] = field(default_factory=dict)
    object_stores: list[str] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)

    def register_listing_table(
        self,
        name: str,
        location: str,
        schema: pa.Schema,
        partitions: Sequence[str],
    ) -> None:
        self.memory_tables.pop(name, None)
        self.listing_tables[name] = (location, schema, tuple(partitions))

    def register_record_batches(self, name: str, batches: Batches) -> None:
        self.listing_tables.pop(name, None)
        self.memory_tables[name] = list(batches)

    def register_object_store(self, root: str) -> None:
        self.object_stores.append(root)

    def deregister_table(self, name: str) -> None:
        self.listing_tables.pop(name, None)
        self.memory_tables.pop(name, None)

    def table_names(self) -> list[str]:
        return sorted({*self.listing_tables, *self.memory_tables})

    def row_count(self, name: str) -> int:
        batches = self.memory_tables.get(name, [])
        return sum(batch.num_rows for batch in batches)

    def execute(self, sql: str) -> Batches:
        self.executed.append(sql)
        if sql not in self.results:
            msg = f"Unexpected query {sql!r}"
            raise QueryExecutionError(msg, stage="plan")
        return self.results[sql]


@dataclass
class FakeSource:
    """RelationalSource serving fixed batches by table name."""

    tables: dict[str, pa.RecordBatch] = field(default_factory=dict)
    calls: list[tuple[str, int | None]] = field(default_factory=list)

    def load_table(self, table: str, *, limit: int | None = None) -> pa.RecordBatch:
        self.calls.append((table, limit))
        batch = self.tables.get(table)
        if batch is None:
            msg = f"Table {table!r} not found in the relational source."
            raise RelationalSourceError(msg)
        return batch if limit is None else batch.slice(0, limit)


__all__ = ["FakeEngine", "FakeSource"]
