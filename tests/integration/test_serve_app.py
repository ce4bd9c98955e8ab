"""Integration tests for the HTTP serving surface."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pyarrow as pa
import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from cache.query_cache import QueryCache
from datafusion_engine.engine import DataFusionEngine
from obs.metrics import MetricsRegistry, build_meter_provider, prometheus_reader
from serve.app import MISSING_SQL_MESSAGE, ServeState, create_app
from serve.settings import build_serve_settings
from tables.registry import TableRegistry
from tests.test_helpers.fakes import FakeSource
from tests.test_helpers.metrics_reader import metric_value
from tests.test_helpers.parquet_seed import seed_events_tree

_JSON = {"accept": "application/json"}


@pytest.fixture(scope="module")
def metrics_pair() -> Iterator[tuple[MetricsRegistry, InMemoryMetricReader]]:
    reader = InMemoryMetricReader()
    metrics = MetricsRegistry.create(build_meter_provider([prometheus_reader(), reader]))
    yield metrics, reader
    metrics.shutdown()


def _state(
    root: Path,
    metrics: MetricsRegistry | None,
    *,
    capabilities: list[str],
    lazy: bool = False,
) -> ServeState:
    settings = build_serve_settings(
        {
            "table_specs": [f"events={root}:year,month"],
            "capabilities": capabilities,
            "lazy_registration": lazy,
        }
    )
    engine = DataFusionEngine()
    orders = pa.RecordBatch.from_pydict({"id": [1, 2, 3], "region": ["eu", "us", "eu"]})
    return ServeState(
        settings=settings,
        engine=engine,
        registry=TableRegistry.from_specs(engine, settings.resolved_specs(), metrics=metrics),
        cache=QueryCache(settings.cache_capacity, metrics=metrics),
        metrics=metrics,
        relational=FakeSource(tables={"orders": orders}),
    )


def _json_rows(text: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in text.splitlines()]


@pytest.fixture
def client(
    tmp_path: Path,
    metrics_pair: tuple[MetricsRegistry, InMemoryMetricReader],
) -> Iterator[TestClient]:
    metrics, _reader = metrics_pair
    state = _state(
        seed_events_tree(tmp_path),
        metrics,
        capabilities=["cache", "metrics", "relational"],
    )
    with TestClient(create_app(state)) as test_client:
        yield test_client


def test_query_returns_text_grid_by_default(client: TestClient) -> None:
    """Ensure the default rendering is a text grid."""
    response = client.post("/query", data={"sql": "SELECT count(*) AS n FROM events"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "| n |" in response.text
    assert "| 6 |" in response.text


def test_query_honors_accept(client: TestClient) -> None:
    """Ensure JSON and CSV are negotiated from the Accept header."""
    sql = "SELECT year, count(*) AS n FROM events GROUP BY year ORDER BY year"
    response = client.post("/query", data={"sql": sql}, headers=_JSON)
    assert _json_rows(response.text) == [{"year": "2023", "n": 3}, {"year": "2024", "n": 3}]
    csv = client.post("/query", data={"sql": sql}, headers={"accept": "text/csv"})
    assert csv.text.splitlines()[0] == '"year","n"'


def test_query_errors(client: TestClient) -> None:
    """Ensure missing SQL and planning failures are client errors."""
    missing = client.post("/query", data={"query": "SELECT 1"})
    assert missing.status_code == 400
    assert missing.text == MISSING_SQL_MESSAGE
    bad = client.post("/query", data={"sql": "SELECT * FROM nowhere"})
    assert bad.status_code == 400


def test_repeated_query_is_served_from_cache(
    client: TestClient,
    metrics_pair: tuple[MetricsRegistry, InMemoryMetricReader],
) -> None:
    """Ensure identical SQL text hits the cache on the second request."""
    _metrics, reader = metrics_pair
    reads = metric_value(reader, "plano.query_cache.reads") or 0
    misses = metric_value(reader, "plano.query_cache.misses") or 0
    sql = "SELECT min(id) AS low FROM events"
    first = client.post("/query", data={"sql": sql}, headers=_JSON)
    second = client.post("/query", data={"sql": sql}, headers=_JSON)
    assert first.text == second.text == '{"low":1}\n'
    assert metric_value(reader, "plano.query_cache.reads") == reads + 2
    assert metric_value(reader, "plano.query_cache.misses") == misses + 1


def test_tables_lists_row_counts(client: TestClient) -> None:
    """Ensure registered tables are listed with row counts."""
    response = client.get("/tables")
    assert response.headers["content-type"] == "application/json"
    assert _json_rows(response.text) == [{"table": "events", "row_count": 6}]


def test_metrics_endpoint_exposes_prometheus_text(client: TestClient) -> None:
    """Ensure /metrics serves the instrument catalog."""
    client.post("/query", data={"sql": "SELECT 1 AS one"})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "plano_query_cache_reads" in response.text
    assert "plano_store_list" in response.text


def test_relational_route_registers_table(client: TestClient) -> None:
    """Ensure relational tables become queryable after loading."""
    response = client.get("/relational/orders", params={"limit": 2}, headers=_JSON)
    assert response.status_code == 200
    assert _json_rows(response.text) == [
        {"id": 1, "region": "eu"},
        {"id": 2, "region": "us"},
    ]
    counted = client.post(
        "/query",
        data={"sql": "SELECT count(*) AS n FROM orders"},
        headers=_JSON,
    )
    assert _json_rows(counted.text) == [{"n": 3}]
    assert client.get("/relational/ghost").status_code == 502


def test_lazy_registration_on_first_query(tmp_path: Path) -> None:
    """Ensure lazy mode registers referenced tables on demand."""
    state = _state(seed_events_tree(tmp_path), None, capabilities=[], lazy=True)
    with TestClient(create_app(state)) as lazy_client:
        assert lazy_client.get("/tables").text == ""
        response = lazy_client.post(
            "/query",
            data={"sql": "SELECT count(*) AS n FROM events"},
            headers=_JSON,
        )
        assert _json_rows(response.text) == [{"n": 6}]
        assert _json_rows(lazy_client.get("/tables").text) == [
            {"table": "events", "row_count": 6}
        ]
        assert lazy_client.get("/metrics").status_code == 404
        assert lazy_client.get("/relational/orders").status_code == 404


def test_lazy_registration_folds_unquoted_names(tmp_path: Path) -> None:
    """Ensure lazy mode resolves mixed-case unquoted names like the engine does."""
    state = _state(seed_events_tree(tmp_path), None, capabilities=[], lazy=True)
    with TestClient(create_app(state)) as lazy_client:
        response = lazy_client.post(
            "/query",
            data={"sql": "SELECT count(*) AS n FROM Events"},
            headers=_JSON,
        )
        assert response.status_code == 200
        assert _json_rows(response.text) == [{"n": 6}]


def test_blank_sql_is_a_planning_error(client: TestClient) -> None:
    """Ensure an empty sql field reaches the engine instead of counting as missing."""
    response = client.post("/query", data={"sql": ""})
    assert response.status_code == 400
    assert response.text != MISSING_SQL_MESSAGE


def test_missing_table_root_aborts_startup(tmp_path: Path) -> None:
    """Ensure eager registration surfaces a root that does not exist."""
    state = _state(tmp_path / "does-not-exist", None, capabilities=[])
    with pytest.raises(FileNotFoundError), TestClient(create_app(state)):
        pass
    assert not state.registry.running


def test_missing_table_root_fails_lazy_query(tmp_path: Path) -> None:
    """Ensure lazy registration reports a missing root as a server error."""
    state = _state(tmp_path / "does-not-exist", None, capabilities=[], lazy=True)
    with TestClient(create_app(state)) as lazy_client:
        response = lazy_client.post("/query", data={"sql": "SELECT * FROM events"})
        assert response.status_code == 500
        assert "does-not-exist" in response.text
