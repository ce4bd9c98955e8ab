"""Pytest diagnostics and shared fixtures."""

from __future__ import annotations

import contextlib
import faulthandler
import json
import logging
import os
import platform
import signal
import sys
from collections.abc import Iterator
from importlib import metadata
from pathlib import Path
from typing import Any

import pytest

_DIAG_DIR = Path("build/test-results")
_ENV_PATH = _DIAG_DIR / "diagnostics_env.json"
_TRACE_PATH = _DIAG_DIR / "diagnostics_tracebacks.log"

_STATE: dict[str, Any] = {"faulthandler_file": None}

_VERSIONED_PACKAGES = (
    "datafusion",
    "pyarrow",
    "sqlglot",
    "msgspec",
    "cyclopts",
    "fastapi",
    "psycopg",
    "opentelemetry-sdk",
)


def _env_subset(prefixes: tuple[str, ...]) -> dict[str, str]:
    return {key: value for key, value in os.environ.items() if key.startswith(prefixes)}


def _package_versions() -> dict[str, str | None]:
    versions: dict[str, str | None] = {}
    for name in _VERSIONED_PACKAGES:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = None
    return versions


def _collect_env() -> dict[str, Any]:
    return {
        "python": sys.version,
        "platform": platform.platform(),
        "env": _env_subset(("ARROW", "DATAFUSION", "PLANO")),
        "versions": _package_versions(),
    }


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    try:
        path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    except OSError:
        return


def pytest_sessionstart(session: object) -> None:
    """Initialize diagnostic capture for the pytest session."""
    with contextlib.suppress(OSError):
        _DIAG_DIR.mkdir(parents=True, exist_ok=True)
    _write_json(_ENV_PATH, _collect_env())
    _setup_faulthandler()
    _ = session


def pytest_sessionfinish(session: object, exitstatus: int) -> None:
    """Release diagnostic resources at pytest session completion."""
    _teardown_faulthandler()
    _ = (session, exitstatus)


def _setup_faulthandler() -> None:
    if _STATE["faulthandler_file"] is not None:
        return
    try:
        _STATE["faulthandler_file"] = _TRACE_PATH.open("a", encoding="utf-8")
    except OSError:
        return
    faulthandler.enable(_STATE["faulthandler_file"], all_threads=True)
    sigabrt = getattr(signal, "SIGABRT", None)
    if sigabrt is None:
        return
    try:
        faulthandler.register(sigabrt, file=_STATE["faulthandler_file"], all_threads=True)
    except RuntimeError:
        return


def _teardown_faulthandler() -> None:
    stream = _STATE.get("faulthandler_file")
    if stream is None:
        return
    with contextlib.suppress(RuntimeError):
        faulthandler.disable()
    sigabrt = getattr(signal, "SIGABRT", None)
    if sigabrt is not None:
        with contextlib.suppress(RuntimeError):
            faulthandler.unregister(sigabrt)
    with contextlib.suppress(OSError):
        stream.close()
    _STATE["faulthandler_file"] = None


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """Undo root logger changes made by CLI logging setup."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
