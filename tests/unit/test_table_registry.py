"""Tests for the single-owner table registration task."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pyarrow as pa
import pytest

from core.errors import EmptyFileSetError
from tables.registry import TableRegistry, referenced_tables
from tables.spec import TableSpec
from tests.test_helpers.fakes import FakeEngine
from tests.test_helpers.parquet_seed import seed_events_tree


def test_referenced_tables_excludes_ctes() -> None:
    """Ensure CTE names are not reported as tables."""
    sql = "WITH recent AS (SELECT * FROM events) SELECT * FROM recent JOIN users USING (id)"
    assert referenced_tables(sql) == ("events", "users")


def test_referenced_tables_tolerates_bad_sql() -> None:
    """Ensure unparseable SQL yields no names."""
    assert referenced_tables("SELECT FROM WHERE (") == ()


def test_referenced_tables_folds_unquoted_case() -> None:
    """Ensure unquoted names are lower-cased and quoted names keep their case."""
    assert referenced_tables("SELECT count(*) FROM Events") == ("events",)
    assert referenced_tables('SELECT * FROM "Events" JOIN Users USING (id)') == (
        "Events",
        "users",
    )
    assert referenced_tables("WITH Recent AS (SELECT 1) SELECT * FROM recent") == ()


def test_register_all_reports_skips(tmp_path: Path) -> None:
    """Ensure startup registration skips tables without files."""
    root = seed_events_tree(tmp_path)
    (tmp_path / "empty").mkdir()
    engine = FakeEngine()
    registry = TableRegistry.from_specs(
        engine,
        [
            TableSpec(name="events", root=str(root), partitions=("year", "month")),
            TableSpec(name="empty", root=str(tmp_path / "empty")),
        ],
    )

    async def scenario() -> tuple[tuple[str, ...], tuple[str, ...]]:
        await registry.start()
        try:
            report = await registry.register_all()
        finally:
            await registry.stop()
        return report.registered_names, report.skipped_names

    assert asyncio.run(scenario()) == (("events",), ("empty",))
    assert sorted(registry.registered()) == ["events"]
    assert not registry.running


def test_ensure_registered_is_lazy_and_idempotent(tmp_path: Path) -> None:
    """Ensure lazy registration happens once and ignores unknown names."""
    root = seed_events_tree(tmp_path)
    engine = FakeEngine()
    registry = TableRegistry.from_specs(
        engine,
        [TableSpec(name="events", root=str(root), partitions=("year", "month"))],
    )

    async def scenario() -> tuple[tuple[str, ...], tuple[str, ...]]:
        await registry.start()
        try:
            first = await registry.ensure_registered(["events", "unknown"])
            engine.listing_tables.clear()
            second = await registry.ensure_registered(["events"])
        finally:
            await registry.stop()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == ("events",)
    assert second == ("events",)
    assert engine.listing_tables == {}


def test_register_propagates_errors(tmp_path: Path) -> None:
    """Ensure explicit registration surfaces failures to the caller."""
    (tmp_path / "empty").mkdir()
    registry = TableRegistry(engine=FakeEngine())

    async def scenario() -> None:
        await registry.start()
        try:
            await registry.register(TableSpec(name="empty", root=str(tmp_path / "empty")))
        finally:
            await registry.stop()

    with pytest.raises(EmptyFileSetError):
        asyncio.run(scenario())


def test_register_batches_replaces_registration(tmp_path: Path) -> None:
    """Ensure in-memory batches take over a registered name."""
    root = seed_events_tree(tmp_path)
    engine = FakeEngine()
    registry = TableRegistry.from_specs(
        engine,
        [TableSpec(name="events", root=str(root), partitions=("year", "month"))],
    )
    batch = pa.RecordBatch.from_pydict({"id": [1]})

    async def scenario() -> None:
        await registry.start()
        try:
            await registry.register_all()
            await registry.register_batches("events", [batch])
        finally:
            await registry.stop()

    asyncio.run(scenario())
    assert engine.memory_tables == {"events": [batch]}
    assert "events" not in engine.listing_tables
    assert registry.registered() == {}


def test_requests_require_a_running_task() -> None:
    """Ensure requests before start fail loudly."""
    registry = TableRegistry(engine=FakeEngine())
    with pytest.raises(RuntimeError, match="not running"):
        asyncio.run(registry.register(TableSpec(name="t", root="/nowhere")))
