"""Partitioned export of relational tables."""

from export.partitions import ExistingPartitionPolicy, ExportResult, export_partitioned

__all__ = ["ExistingPartitionPolicy", "ExportResult", "export_partitioned"]
