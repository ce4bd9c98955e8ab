"""Shared type aliases for plano."""

from __future__ import annotations

from typing import Annotated

import pyarrow as pa
from msgspec import Meta

type Batches = list[pa.RecordBatch]

PositiveInt = Annotated[int, Meta(gt=0)]

__all__ = ["Batches", "PositiveInt"]
