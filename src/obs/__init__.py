"""Observability: metrics instruments and process logging."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from obs.logging import configure_logging
    from obs.metrics import MetricsRegistry, build_meter_provider, prometheus_reader

_EXPORT_MAP: dict[str, tuple[str, str]] = {
    "MetricsRegistry": ("obs.metrics", "MetricsRegistry"),
    "build_meter_provider": ("obs.metrics", "build_meter_provider"),
    "configure_logging": ("obs.logging", "configure_logging"),
    "prometheus_reader": ("obs.metrics", "prometheus_reader"),
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
    "MetricsRegistry",
    "build_meter_provider",
    "configure_logging",
    "prometheus_reader",
)
