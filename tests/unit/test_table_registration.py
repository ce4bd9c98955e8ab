"""Tests for partition-aware listing table registration."""

from __future__ import annotations

from pathlib import Path

import pyarrow as pa
import pytest

from core.errors import EmptyFileSetError
from storage.object_store import store_for_uri
from tables.registration import list_data_files, register_table, register_tables
from tables.spec import TableSpec
from tests.test_helpers.fakes import FakeEngine
from tests.test_helpers.metrics_reader import metric_value, metrics_harness
from tests.test_helpers.parquet_seed import memory_store_with, seed_events_tree, write_parquet


def test_register_table_cleans_partition_collisions(tmp_path: Path) -> None:
    """Ensure file columns shadowed by partition columns are dropped."""
    root = seed_events_tree(tmp_path)
    engine = FakeEngine()
    registration = register_table(
        engine,
        TableSpec(name="events", root=str(root), partitions=("year", "month")),
    )
    location, schema, partitions = engine.listing_tables["events"]
    assert location == f"{root.resolve()}/"
    assert schema.names == ["id", "kind"]
    assert partitions == ("year", "month")
    assert registration.file_count == 3
    assert engine.object_stores == []


def test_register_table_without_files_fails(tmp_path: Path) -> None:
    """Ensure roots without Parquet files are rejected."""
    (tmp_path / "empty").mkdir()
    with pytest.raises(EmptyFileSetError):
        register_table(FakeEngine(), TableSpec(name="empty", root=str(tmp_path / "empty")))


def test_list_data_files_skips_hidden_entries(tmp_path: Path) -> None:
    """Ensure underscore and dot prefixed paths are not data files."""
    write_parquet(tmp_path / "t" / "part-0.parquet", {"id": [1]})
    write_parquet(tmp_path / "t" / "_tmp" / "part-1.parquet", {"id": [2]})
    write_parquet(tmp_path / "t" / ".staging" / "part-2.parquet", {"id": [3]})
    (tmp_path / "t" / "_SUCCESS").write_text("", encoding="utf-8")
    (tmp_path / "t" / "notes.txt").write_text("x", encoding="utf-8")
    store, path = store_for_uri(f"{tmp_path / 't'}/")
    files = list_data_files(store, path)
    assert [Path(meta.location).name for meta in files] == ["part-0.parquet"]


def test_register_uri_root_registers_object_store() -> None:
    """Ensure remote roots make the engine register their object store."""
    store = memory_store_with({"bucket/events/day=1/a.parquet": pa.table({"id": [1]})})
    metrics, reader = metrics_harness()
    engine = FakeEngine()
    register_table(
        engine,
        TableSpec(name="events", root="s3://bucket/events", partitions=("day",)),
        store=store,
        metrics=metrics,
    )
    assert engine.object_stores == ["s3://bucket/events/"]
    assert engine.listing_tables["events"][0] == "s3://bucket/events/"
    assert metric_value(reader, "plano.store.list") == 1
    assert metric_value(reader, "plano.store.get_range") >= 1


def test_register_tables_skips_empty_roots(tmp_path: Path) -> None:
    """Ensure one empty table does not block the others."""
    root = seed_events_tree(tmp_path)
    (tmp_path / "empty").mkdir()
    engine = FakeEngine()
    report = register_tables(
        engine,
        [
            TableSpec(name="events", root=str(root), partitions=("year", "month")),
            TableSpec(name="empty", root=str(tmp_path / "empty")),
        ],
    )
    assert report.registered_names == ("events",)
    assert report.skipped_names == ("empty",)
    assert engine.table_names() == ["events"]


def test_register_table_missing_root_raises_io_error(tmp_path: Path) -> None:
    """Ensure a root that does not exist surfaces the filesystem error."""
    engine = FakeEngine()
    with pytest.raises(FileNotFoundError):
        register_table(engine, TableSpec(name="t", root=str(tmp_path / "does-not-exist")))
    assert engine.table_names() == []


def test_register_tables_stops_on_missing_root(tmp_path: Path) -> None:
    """Ensure a mistyped root aborts batch registration instead of being skipped."""
    root = seed_events_tree(tmp_path)
    with pytest.raises(FileNotFoundError):
        register_tables(
            FakeEngine(),
            [
                TableSpec(name="events", root=str(root), partitions=("year", "month")),
                TableSpec(name="typo", root=str(tmp_path / "typo")),
            ],
        )
