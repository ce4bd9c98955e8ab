"""Serving process configuration."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum

import msgspec

from cache.query_cache import DEFAULT_CACHE_CAPACITY
from core.errors import ConfigError
from core_types import PositiveInt
from datafusion_engine.schema_inference import DEFAULT_SAMPLE_FILES
from serde_msgspec import StructBaseStrict
from tables.spec import (
    TableSpec,
    apply_partition_overrides,
    parse_partition_override,
    parse_table_spec,
)

DEFAULT_BIND = "127.0.0.1:8080"


class Capability(StrEnum):
    """Optional features a serving process can enable."""

    CACHE = "cache"
    METRICS = "metrics"
    RELATIONAL = "relational"


DEFAULT_CAPABILITIES: tuple[Capability, ...] = (Capability.CACHE, Capability.METRICS)


class ServeSettings(StructBaseStrict, frozen=True):
    """Resolved settings for ``plano serve``."""

    table_specs: tuple[str, ...] = ()
    table_partitions: tuple[str, ...] = ()
    bind: str = DEFAULT_BIND
    cache_capacity: PositiveInt = DEFAULT_CACHE_CAPACITY
    capabilities: tuple[Capability, ...] = DEFAULT_CAPABILITIES
    lazy_registration: bool = False
    sample_files: PositiveInt = DEFAULT_SAMPLE_FILES

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def host_port(self) -> tuple[str, int]:
        """Split ``bind`` into host and port.

        Returns
        -------
        tuple[str, int]
            Host and TCP port.

        Raises
        ------
        ConfigError
            Raised when ``bind`` is not ``HOST:PORT``.
        """
        host, sep, port = self.bind.rpartition(":")
        if not sep or not host or not port.isdigit():
            msg = f"Invalid bind address {self.bind!r}: expected HOST:PORT."
            raise ConfigError(msg, literal=self.bind)
        return host.strip("[]"), int(port)

    def resolved_specs(self) -> list[TableSpec]:
        """Parse table specs and apply explicit partition overrides.

        Returns
        -------
        list[TableSpec]
            Specs in configuration order.
        """
        specs = [parse_table_spec(value) for value in self.table_specs]
        overrides = dict(parse_partition_override(value) for value in self.table_partitions)
        return apply_partition_overrides(specs, overrides)


def build_serve_settings(values: Mapping[str, object]) -> ServeSettings:
    """Validate raw values into ``ServeSettings``.

    Returns
    -------
    ServeSettings
        Validated settings.

    Raises
    ------
    ConfigError
        Raised when a value fails validation.
    """
    payload = {key: value for key, value in values.items() if value is not None}
    try:
        return msgspec.convert(payload, type=ServeSettings)
    except msgspec.ValidationError as exc:
        msg = f"Invalid serve settings: {exc}"
        raise ConfigError(msg) from exc


__all__ = [
    "DEFAULT_BIND",
    "DEFAULT_CAPABILITIES",
    "Capability",
    "ServeSettings",
    "build_serve_settings",
]
