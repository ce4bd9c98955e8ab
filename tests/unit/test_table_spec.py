"""Tests for table spec parsing and partition overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import ConfigError
from tables.spec import (
    TableSpec,
    apply_partition_overrides,
    normalize_root,
    parse_partition_override,
    parse_table_spec,
)


def test_parse_local_spec_with_partitions() -> None:
    """Ensure text after the last colon becomes the partition list."""
    spec = parse_table_spec("events=/data/events:year,month,day")
    assert spec == TableSpec(
        name="events",
        root="/data/events",
        partitions=("year", "month", "day"),
    )


def test_parse_spec_without_partitions() -> None:
    """Ensure a spec without a partition suffix has no partitions."""
    spec = parse_table_spec("users=/data/users")
    assert spec.root == "/data/users"
    assert spec.partitions == ()


def test_parse_uri_spec_keeps_scheme_colon() -> None:
    """Ensure the colon of a URI scheme is not read as a partition separator."""
    spec = parse_table_spec("users=s3://bucket/users")
    assert spec.root == "s3://bucket/users"
    assert spec.partitions == ()


def test_parse_uri_spec_with_partitions() -> None:
    """Ensure URIs still accept a trailing partition list."""
    spec = parse_table_spec("events=s3://bucket/events:year,month")
    assert spec.root == "s3://bucket/events"
    assert spec.partitions == ("year", "month")


@pytest.mark.parametrize(
    "value",
    ["", "events", "=/data/events", "events=", "events=/data:a,,b", "events=/data:a,a"],
)
def test_parse_rejects_malformed_specs(value: str) -> None:
    """Ensure malformed specs raise a config error carrying the literal."""
    with pytest.raises(ConfigError) as excinfo:
        parse_table_spec(value)
    assert excinfo.value.literal == value


def test_partition_override_replaces_spec_partitions() -> None:
    """Ensure explicit overrides win over the table spec's partition list."""
    specs = [parse_table_spec("events=/data/events:year"), parse_table_spec("users=/data/users")]
    overrides = dict([parse_partition_override("events=year,month")])
    resolved = apply_partition_overrides(specs, overrides)
    assert resolved[0].partitions == ("year", "month")
    assert resolved[1].partitions == ()


def test_partition_override_for_unknown_table_fails() -> None:
    """Ensure overrides for tables without a spec are rejected."""
    with pytest.raises(ConfigError, match="unknown tables: missing"):
        apply_partition_overrides([], {"missing": ("year",)})


def test_partition_override_requires_name() -> None:
    """Ensure overrides without a table name are rejected."""
    with pytest.raises(ConfigError):
        parse_partition_override("=year")


def test_normalize_root_adds_trailing_slash(tmp_path: Path) -> None:
    """Ensure roots are absolute directories ending with a slash."""
    assert normalize_root(str(tmp_path)) == f"{tmp_path.resolve()}/"
    assert normalize_root("s3://bucket/events") == "s3://bucket/events/"
    assert normalize_root("s3://bucket/events/") == "s3://bucket/events/"
