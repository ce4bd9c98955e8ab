"""Table specification parsing for partition-aware registration.

A table spec binds a SQL name to a storage root and an optional ordered list
of directory-derived partition columns::

    events=/data/parquet/events:year,month,day
    users=s3://bucket/users
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from core.errors import ConfigError
from utils.uri import is_uri


@dataclass(frozen=True)
class TableSpec:
    """A single table registration spec.

    Attributes
    ----------
    name
        SQL name clients will use (e.g. ``events``).
    root
        Local path or URI pointing at the top-level directory.
    partitions
        Zero or more folder-key names (e.g. ``("year", "month", "day")``).
    """

    name: str
    root: str
    partitions: tuple[str, ...] = ()

    def with_partitions(self, partitions: tuple[str, ...]) -> TableSpec:
        """Return a copy of this spec with explicit partition columns.

        Returns
        -------
        TableSpec
            Spec with ``partitions`` replaced.
        """
        return replace(self, partitions=_validated_partitions(partitions, literal=self.name))


def _validated_partitions(partitions: tuple[str, ...], *, literal: str) -> tuple[str, ...]:
    seen: set[str] = set()
    for column in partitions:
        if not column:
            msg = f"Invalid table-spec {literal!r}: empty partition column."
            raise ConfigError(msg, literal=literal)
        if column in seen:
            msg = f"Invalid table-spec {literal!r}: duplicate partition column {column!r}."
            raise ConfigError(msg, literal=literal)
        seen.add(column)
    return partitions


def _split_columns(value: str) -> tuple[str, ...]:
    if not value.strip():
        return ()
    return tuple(part.strip() for part in value.split(","))


def parse_table_spec(value: str) -> TableSpec:
    """Parse a ``name=root[:col1,col2,...]`` table spec.

    The partition list is the text after the last colon of the root, but only
    when that text contains no ``/``; otherwise the colon belongs to the root
    (``s3://bucket/path``).

    Parameters
    ----------
    value
        Raw table spec string.

    Returns
    -------
    TableSpec
        Parsed table descriptor.

    Raises
    ------
    ConfigError
        Raised when the table spec is empty, has no ``=``, or has an empty name,
        empty root, or empty/duplicate partition columns.
    """
    name, sep, rest = value.partition("=")
    if not sep:
        msg = f"Invalid table-spec {value!r}: expected name=root[:col1,col2,...]."
        raise ConfigError(msg, literal=value)
    name = name.strip()
    if not name:
        msg = f"Invalid table-spec {value!r}: empty table name."
        raise ConfigError(msg, literal=value)
    root = rest
    partitions: tuple[str, ...] = ()
    head, colon, tail = rest.rpartition(":")
    if colon and "/" not in tail:
        root = head
        partitions = _split_columns(tail)
    root = root.strip()
    if not root:
        msg = f"Invalid table-spec {value!r}: empty root."
        raise ConfigError(msg, literal=value)
    return TableSpec(
        name=name,
        root=root,
        partitions=_validated_partitions(partitions, literal=value),
    )


def parse_partition_override(value: str) -> tuple[str, tuple[str, ...]]:
    """Parse a ``name=col1,col2`` partition override.

    Returns
    -------
    tuple[str, tuple[str, ...]]
        Table name and its partition columns.

    Raises
    ------
    ConfigError
        Raised when the override has no ``=`` or an empty name.
    """
    name, sep, columns = value.partition("=")
    name = name.strip()
    if not sep or not name:
        msg = f"Invalid partition override {value!r}: expected name=col1,col2."
        raise ConfigError(msg, literal=value)
    return name, _validated_partitions(_split_columns(columns), literal=value)


def apply_partition_overrides(
    specs: list[TableSpec],
    overrides: dict[str, tuple[str, ...]],
) -> list[TableSpec]:
    """Replace heuristic partition lists with explicit overrides by table name.

    Returns
    -------
    list[TableSpec]
        Specs with overrides applied.

    Raises
    ------
    ConfigError
        Raised when an override names an unknown table.
    """
    known = {spec.name for spec in specs}
    unknown = sorted(set(overrides) - known)
    if unknown:
        msg = f"Partition overrides reference unknown tables: {', '.join(unknown)}."
        raise ConfigError(msg)
    return [
        spec.with_partitions(overrides[spec.name]) if spec.name in overrides else spec
        for spec in specs
    ]


def normalize_root(root: str) -> str:
    """Normalize a table root to a directory form with a trailing slash.

    Local paths are made absolute; URIs keep their scheme.

    Returns
    -------
    str
        Normalized root ending with ``/``.
    """
    if is_uri(root):
        return root if root.endswith("/") else f"{root}/"
    resolved = str(Path(root).expanduser().resolve())
    return resolved if resolved.endswith("/") else f"{resolved}/"


__all__ = [
    "TableSpec",
    "apply_partition_overrides",
    "normalize_root",
    "parse_partition_override",
    "parse_table_spec",
]
