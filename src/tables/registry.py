"""Single-owner asynchronous table registration for the serving process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from core.errors import EmptyFileSetError, SchemaError
from core_types import Batches
from datafusion_engine.schema_inference import DEFAULT_SAMPLE_FILES
from tables.registration import RegistrationReport, TableRegistration, register_table

if TYPE_CHECKING:
    from datafusion_engine.engine import QueryEngine
    from obs.metrics import MetricsRegistry
    from storage.object_store import ObjectStore
    from tables.spec import TableSpec

_LOGGER = logging.getLogger(__name__)


def _engine_name(identifier: exp.Expression | None, fallback: str) -> str:
    if isinstance(identifier, exp.Identifier) and identifier.quoted:
        return identifier.name
    return fallback.lower()


def referenced_tables(sql: str) -> tuple[str, ...]:
    """Return table names referenced by a SQL text, excluding CTE names.

    Unquoted names are lower-cased the way the engine resolves them; quoted
    names keep their case. Unparseable SQL yields no names; the engine reports
    the syntax error.

    Returns
    -------
    tuple[str, ...]
        Sorted table names.
    """
    try:
        expressions = sqlglot.parse(sql)
    except SqlglotError:
        return ()
    names: set[str] = set()
    ctes: set[str] = set()
    for expr in expressions:
        if expr is None:
            continue
        for table in expr.find_all(exp.Table):
            if table.name:
                names.add(_engine_name(table.this, table.name))
        for cte in expr.find_all(exp.CTE):
            alias = cte.args.get("alias")
            ctes.add(_engine_name(alias.this if alias is not None else None, cte.alias_or_name))
    return tuple(sorted(names - ctes))


@dataclass
class _RegistrationRequest:
    spec: TableSpec
    future: asyncio.Future[TableRegistration]
    if_missing: bool = False


@dataclass
class _BatchRequest:
    name: str
    batches: Batches
    future: asyncio.Future[None]


type _Request = _RegistrationRequest | _BatchRequest


@dataclass
class TableRegistry:
    """Serialize registrations through one task reading from a queue.

    Callers never touch the engine catalog directly: ``register`` and
    ``ensure_registered`` enqueue requests and await their results.
    """

    engine: QueryEngine
    specs: dict[str, TableSpec] = field(default_factory=dict)
    store: ObjectStore | None = None
    metrics: MetricsRegistry | None = None
    sample_files: int = DEFAULT_SAMPLE_FILES
    _registered: dict[str, TableRegistration] = field(default_factory=dict, init=False)
    _queue: asyncio.Queue[_Request | None] | None = field(default=None, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False)

    @classmethod
    def from_specs(
        cls,
        engine: QueryEngine,
        specs: Iterable[TableSpec],
        *,
        store: ObjectStore | None = None,
        metrics: MetricsRegistry | None = None,
        sample_files: int = DEFAULT_SAMPLE_FILES,
    ) -> TableRegistry:
        return cls(
            engine=engine,
            specs={spec.name: spec for spec in specs},
            store=store,
            metrics=metrics,
            sample_files=sample_files,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def registered(self) -> dict[str, TableRegistration]:
        return dict(self._registered)

    async def start(self) -> None:
        """Start the owning task on the running event loop."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="table-registry")

    async def stop(self) -> None:
        """Drain pending requests and stop the owning task."""
        if self._task is None or self._queue is None:
            return
        await self._queue.put(None)
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._queue = None

    async def register(self, spec: TableSpec) -> TableRegistration:
        """Register or re-register ``spec`` and wait for the outcome.

        Returns
        -------
        TableRegistration
            Registration produced by the owning task.
        """
        self.specs[spec.name] = spec
        return await self._submit(spec, if_missing=False)

    async def register_all(self) -> RegistrationReport:
        """Register every known spec, skipping empty or unsupported tables.

        Returns
        -------
        RegistrationReport
            Registered tables and skipped names with reasons.
        """
        registered: list[TableRegistration] = []
        skipped: list[tuple[str, str]] = []
        for spec in list(self.specs.values()):
            try:
                registered.append(await self._submit(spec, if_missing=False))
            except (EmptyFileSetError, SchemaError) as exc:
                _LOGGER.warning("Skipping table %s: %s", spec.name, exc)
                skipped.append((spec.name, str(exc)))
        return RegistrationReport(registered=tuple(registered), skipped=tuple(skipped))

    async def ensure_registered(self, names: Iterable[str]) -> tuple[str, ...]:
        """Register known tables from ``names`` that are not registered yet.

        Unknown names are ignored. Tables without files or with unsupported
        schemas are logged and left unregistered so the query reports them.

        Returns
        -------
        tuple[str, ...]
            Names registered by this call or earlier.
        """
        ready: list[str] = []
        for name in names:
            spec = self.specs.get(name)
            if spec is None:
                continue
            try:
                await self._submit(spec, if_missing=True)
            except (EmptyFileSetError, SchemaError) as exc:
                _LOGGER.warning("Lazy registration of %s failed: %s", name, exc)
                continue
            ready.append(name)
        return tuple(ready)

    async def _submit(self, spec: TableSpec, *, if_missing: bool) -> TableRegistration:
        queue = self._require_queue()
        future: asyncio.Future[TableRegistration] = asyncio.get_running_loop().create_future()
        await queue.put(_RegistrationRequest(spec=spec, future=future, if_missing=if_missing))
        return await future

    async def register_batches(self, name: str, batches: Batches) -> None:
        """Register in-memory batches under ``name``, replacing any table."""
        queue = self._require_queue()
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        await queue.put(_BatchRequest(name=name, batches=batches, future=future))
        await future

    def _require_queue(self) -> asyncio.Queue[_Request | None]:
        if self._queue is None or not self.running:
            msg = "TableRegistry is not running; call start() first."
            raise RuntimeError(msg)
        return self._queue

    async def _run(self) -> None:
        queue = self._queue
        if queue is None:
            return
        while True:
            request = await queue.get()
            if request is None:
                return
            if request.future.done():
                continue
            if isinstance(request, _BatchRequest):
                await self._handle_batches(request)
            else:
                await self._handle_spec(request)

    async def _handle_batches(self, request: _BatchRequest) -> None:
        try:
            await asyncio.to_thread(
                self.engine.register_record_batches,
                request.name,
                request.batches,
            )
        except Exception as exc:
            # The requester re-raises it from the awaited future.
            if not request.future.done():
                request.future.set_exception(exc)
            return
        self._registered.pop(request.name, None)
        _LOGGER.info("Registered in-memory table %s", request.name)
        if not request.future.done():
            request.future.set_result(None)

    async def _handle_spec(self, request: _RegistrationRequest) -> None:
        existing = self._registered.get(request.spec.name)
        if request.if_missing and existing is not None:
            request.future.set_result(existing)
            return
        try:
            registration = await asyncio.to_thread(
                register_table,
                self.engine,
                request.spec,
                store=self.store,
                metrics=self.metrics,
                sample_files=self.sample_files,
            )
        except Exception as exc:
            # The requester re-raises it from the awaited future.
            if not request.future.done():
                request.future.set_exception(exc)
            return
        self._registered[registration.name] = registration
        if not request.future.done():
            request.future.set_result(registration)


__all__ = ["TableRegistry", "referenced_tables"]
