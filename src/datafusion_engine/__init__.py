"""DataFusion execution helpers."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datafusion_engine.engine import DataFusionEngine, QueryEngine
    from datafusion_engine.schema_inference import clean_schema, infer_file_schema

_EXPORT_MAP: dict[str, tuple[str, str]] = {
    "DataFusionEngine": ("datafusion_engine.engine", "DataFusionEngine"),
    "QueryEngine": ("datafusion_engine.engine", "QueryEngine"),
    "clean_schema": ("datafusion_engine.schema_inference", "clean_schema"),
    "infer_file_schema": ("datafusion_engine.schema_inference", "infer_file_schema"),
}


def __getattr__(name: str) -> object:
    target = _EXPORT_MAP.get(name)
    if target is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    module_name, attr_name = target
    module = importlib.import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(__all__)


__all__ = (
    "DataFusionEngine",
    "QueryEngine",
    "clean_schema",
    "infer_file_schema",
)
