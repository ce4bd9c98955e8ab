"""Table specs and partition-aware registration."""

from tables.spec import (
    TableSpec,
    apply_partition_overrides,
    normalize_root,
    parse_partition_override,
    parse_table_spec,
)

__all__ = [
    "TableSpec",
    "apply_partition_overrides",
    "normalize_root",
    "parse_partition_override",
    "parse_table_spec",
]
