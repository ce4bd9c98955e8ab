"""FastAPI application composed from the enabled serving capabilities."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

import pyarrow as pa
from fastapi import APIRouter, FastAPI, Query, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.errors import ConfigError, QueryExecutionError, RelationalSourceError, SchemaError
from serve.formatting import (
    OutputFormat,
    content_type_for,
    format_batches,
    output_format_for_accept,
)
from serve.settings import Capability, ServeSettings
from tables.registry import TableRegistry, referenced_tables

if TYPE_CHECKING:
    from cache.query_cache import QueryCache
    from core_types import Batches
    from datafusion_engine.engine import QueryEngine
    from obs.metrics import MetricsRegistry
    from relational.postgres import RelationalSource

_LOGGER = logging.getLogger(__name__)

MISSING_SQL_MESSAGE = "Can not extract 'sql' from input"
DEFAULT_RELATIONAL_LIMIT = 10

_TABLES_SCHEMA = pa.schema([("table", pa.string()), ("row_count", pa.int64())])


@dataclass
class ServeState:
    """Shared objects behind every route of one serving process."""

    settings: ServeSettings
    engine: QueryEngine
    registry: TableRegistry
    cache: QueryCache | None = None
    metrics: MetricsRegistry | None = None
    relational: RelationalSource | None = None


def _state(request: Request) -> ServeState:
    return request.app.state.plano


def extract_sql(body: bytes) -> str | None:
    """Return the ``sql`` field of a url-encoded form body.

    Returns
    -------
    str | None
        Query text, possibly empty, or None when the body is undecodable
        or has no ``sql`` field.
    """
    try:
        form = parse_qs(body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        return None
    values = form.get("sql")
    if not values:
        return None
    return values[0]


def _formatted(batches: Batches, fmt: OutputFormat) -> Response:
    return Response(format_batches(batches, fmt), media_type=content_type_for(fmt))


async def _execute(state: ServeState, sql: str) -> Batches:
    if state.cache is not None:
        cached = state.cache.get(sql)
        if cached is not None:
            return cached
    if state.settings.lazy_registration:
        await state.registry.ensure_registered(referenced_tables(sql))
    batches = await asyncio.to_thread(state.engine.execute, sql)
    if state.cache is not None:
        state.cache.put(sql, batches)
    return batches


query_router = APIRouter()


@query_router.post("/query")
async def query(request: Request) -> Response:
    """Run the posted SQL and render the result per ``Accept``."""
    state = _state(request)
    sql = extract_sql(await request.body())
    if sql is None:
        return PlainTextResponse(MISSING_SQL_MESSAGE, status_code=400)
    fmt = output_format_for_accept(request.headers.get("accept"), OutputFormat.TEXT)
    try:
        batches = await _execute(state, sql)
    except QueryExecutionError as exc:
        _LOGGER.warning("Query failed during %s: %s", exc.stage, exc)
        status = 400 if exc.stage == "plan" else 500
        return PlainTextResponse(str(exc), status_code=status)
    except OSError as exc:
        _LOGGER.warning("Table registration failed: %s", exc)
        return PlainTextResponse(str(exc), status_code=500)
    return _formatted(batches, fmt)


@query_router.get("/tables")
async def tables(request: Request) -> Response:
    """List registered tables with their row counts."""
    state = _state(request)
    fmt = output_format_for_accept(request.headers.get("accept"), OutputFormat.JSON)

    def _counts() -> pa.RecordBatch:
        names = state.engine.table_names()
        counts = [state.engine.row_count(name) for name in names]
        return pa.RecordBatch.from_pydict(
            {"table": names, "row_count": counts},
            schema=_TABLES_SCHEMA,
        )

    try:
        batch = await asyncio.to_thread(_counts)
    except QueryExecutionError as exc:
        _LOGGER.warning("Table listing failed: %s", exc)
        return PlainTextResponse(str(exc), status_code=500)
    return _formatted([batch], fmt)


metrics_router = APIRouter()


@metrics_router.get("/metrics", include_in_schema=False)
def prometheus_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


relational_router = APIRouter()


@relational_router.get("/relational/{table}")
async def relational_table(
    request: Request,
    table: str,
    limit: int = Query(default=DEFAULT_RELATIONAL_LIMIT, ge=0),
) -> Response:
    """Load a relational table into the engine and return its first rows."""
    state = _state(request)
    if state.relational is None:
        return PlainTextResponse("Relational source is not configured", status_code=503)
    fmt = output_format_for_accept(request.headers.get("accept"), OutputFormat.JSON)
    try:
        batch = await asyncio.to_thread(state.relational.load_table, table)
    except RelationalSourceError as exc:
        _LOGGER.warning("Relational load of %s failed: %s", table, exc)
        return PlainTextResponse(str(exc), status_code=502)
    except (SchemaError, ConfigError) as exc:
        _LOGGER.warning("Relational load of %s rejected: %s", table, exc)
        return PlainTextResponse(str(exc), status_code=422)
    await state.registry.register_batches(table, [batch])
    escaped = table.replace('"', '""')
    try:
        batches = await asyncio.to_thread(
            state.engine.execute,
            f'SELECT * FROM "{escaped}" LIMIT {limit}',
        )
    except QueryExecutionError as exc:
        return PlainTextResponse(str(exc), status_code=500)
    return _formatted(batches, fmt)


def _routers(settings: ServeSettings) -> list[APIRouter]:
    routers = [query_router]
    if settings.has(Capability.METRICS):
        routers.append(metrics_router)
    if settings.has(Capability.RELATIONAL):
        routers.append(relational_router)
    return routers


def create_app(state: ServeState) -> FastAPI:
    """Build the application for ``state``.

    Startup starts the registration task and, unless registration is lazy,
    registers every configured table; a missing table root aborts startup.
    Shutdown stops the task.

    Returns
    -------
    FastAPI
        Application with routes for the enabled capabilities.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await state.registry.start()
        try:
            if not state.settings.lazy_registration:
                report = await state.registry.register_all()
                _LOGGER.info(
                    "Registered %d tables, skipped %d.",
                    len(report.registered),
                    len(report.skipped),
                )
            yield
        finally:
            await state.registry.stop()

    app = FastAPI(title="plano", lifespan=lifespan)
    app.state.plano = state
    for router in _routers(state.settings):
        app.include_router(router)
    return app


__all__ = [
    "DEFAULT_RELATIONAL_LIMIT",
    "MISSING_SQL_MESSAGE",
    "ServeState",
    "create_app",
    "extract_sql",
]
