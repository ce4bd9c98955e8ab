"""Run the SQL-over-HTTP serving process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

import uvicorn
from cyclopts import Parameter

from cache.query_cache import DEFAULT_CACHE_CAPACITY, QueryCache
from cli.exit_codes import ExitCode
from cli.groups import server_group, source_group, tables_group
from core.errors import ConfigError
from datafusion_engine.engine import DataFusionEngine
from datafusion_engine.schema_inference import DEFAULT_SAMPLE_FILES
from obs.metrics import MetricsRegistry, build_meter_provider, prometheus_reader
from relational.postgres import DATABASE_URL_ENV, PostgresSource
from serve.app import ServeState, create_app
from serve.settings import (
    DEFAULT_BIND,
    DEFAULT_CAPABILITIES,
    Capability,
    ServeSettings,
    build_serve_settings,
)
from tables.registry import TableRegistry
from utils.env_utils import env_value

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServeOptions:
    """CLI options for ``plano serve``."""

    table_spec: Annotated[
        tuple[str, ...],
        Parameter(
            name="--table-spec",
            help="Table as NAME=ROOT[:COL1,COL2,...] (repeatable).",
            group=tables_group,
        ),
    ] = ()
    table_partitions: Annotated[
        tuple[str, ...],
        Parameter(
            name="--table-partitions",
            help="Partition columns as NAME=COL1,COL2 (repeatable, wins over --table-spec).",
            group=tables_group,
        ),
    ] = ()
    bind: Annotated[
        str,
        Parameter(
            name="--bind",
            help="Address to listen on as HOST:PORT.",
            env_var="PLANO_BIND",
            group=server_group,
        ),
    ] = DEFAULT_BIND
    cache_capacity: Annotated[
        int,
        Parameter(
            name="--cache-capacity",
            help="Number of distinct query results kept in memory.",
            env_var="PLANO_CACHE_CAPACITY",
            group=server_group,
        ),
    ] = DEFAULT_CACHE_CAPACITY
    capability: Annotated[
        tuple[Capability, ...],
        Parameter(
            name="--capability",
            help="Enabled capability (repeatable): cache, metrics, relational.",
            group=server_group,
        ),
    ] = DEFAULT_CAPABILITIES
    lazy_registration: Annotated[
        bool,
        Parameter(
            name="--lazy-registration",
            help="Register tables on first use instead of at startup.",
            group=server_group,
        ),
    ] = False
    sample_files: Annotated[
        int,
        Parameter(
            name="--sample-files",
            help="Parquet footers sampled per table for schema inference.",
            group=tables_group,
        ),
    ] = DEFAULT_SAMPLE_FILES
    database_url: Annotated[
        str | None,
        Parameter(
            name="--database-url",
            help="Relational source connection string.",
            env_var=DATABASE_URL_ENV,
            group=source_group,
        ),
    ] = None


_DEFAULT_SERVE_OPTIONS = ServeOptions()


def settings_from_options(options: ServeOptions) -> ServeSettings:
    """Validate CLI options into serve settings.

    Returns
    -------
    ServeSettings
        Validated settings.
    """
    return build_serve_settings(
        {
            "table_specs": list(options.table_spec),
            "table_partitions": list(options.table_partitions),
            "bind": options.bind,
            "cache_capacity": options.cache_capacity,
            "capabilities": [str(capability) for capability in dict.fromkeys(options.capability)],
            "lazy_registration": options.lazy_registration,
            "sample_files": options.sample_files,
        }
    )


def build_state(settings: ServeSettings, *, database_url: str | None = None) -> ServeState:
    """Assemble engine, registry, cache, metrics, and sources for ``settings``.

    Returns
    -------
    ServeState
        State shared by the application routes.

    Raises
    ------
    ConfigError
        Raised when the relational capability has no connection string.
    """
    specs = settings.resolved_specs()
    metrics = None
    if settings.has(Capability.METRICS):
        metrics = MetricsRegistry.create(build_meter_provider([prometheus_reader()]))
    cache = None
    if settings.has(Capability.CACHE):
        cache = QueryCache(settings.cache_capacity, metrics=metrics)
    relational = None
    if settings.has(Capability.RELATIONAL):
        url = database_url or env_value(DATABASE_URL_ENV)
        if url is None:
            msg = f"The relational capability requires {DATABASE_URL_ENV}."
            raise ConfigError(msg)
        relational = PostgresSource(url=url)
    engine = DataFusionEngine()
    registry = TableRegistry.from_specs(
        engine,
        specs,
        metrics=metrics,
        sample_files=settings.sample_files,
    )
    return ServeState(
        settings=settings,
        engine=engine,
        registry=registry,
        cache=cache,
        metrics=metrics,
        relational=relational,
    )


def serve_command(
    options: Annotated[ServeOptions, Parameter(name="*")] = _DEFAULT_SERVE_OPTIONS,
) -> int:
    """Serve registered tables over HTTP.

    Returns
    -------
    int
        Exit status code.
    """
    settings = settings_from_options(options)
    host, port = settings.host_port()
    state = build_state(settings, database_url=options.database_url)
    _LOGGER.info(
        "Serving on %s:%d with capabilities: %s",
        host,
        port,
        ", ".join(settings.capabilities) or "none",
    )
    try:
        uvicorn.run(create_app(state), host=host, port=port, log_config=None)
    finally:
        if state.metrics is not None:
            state.metrics.shutdown()
    return ExitCode.SUCCESS


__all__ = ["ServeOptions", "build_state", "serve_command", "settings_from_options"]
