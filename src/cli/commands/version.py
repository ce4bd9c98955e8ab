"""Version reporting for the plano CLI."""

from __future__ import annotations

import platform
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Annotated

from cyclopts import Parameter

from cli.exit_codes import ExitCode
from cli.groups import output_group
from serde_msgspec import JSON_ENCODER, StructBaseStrict

_DEPENDENCIES = ("datafusion", "pyarrow", "sqlglot", "fastapi", "psycopg")


class VersionInfo(StructBaseStrict, frozen=True):
    """Versions of plano, the interpreter, and the engine stack."""

    plano: str
    python: str
    platform: str
    dependencies: dict[str, str | None]


def _package_version(name: str) -> str | None:
    try:
        return pkg_version(name)
    except PackageNotFoundError:
        return None


def get_version() -> str:
    """Return the installed plano version, or ``0.0.0-dev`` from a checkout."""
    return _package_version("plano") or "0.0.0-dev"


def get_version_info() -> VersionInfo:
    return VersionInfo(
        plano=get_version(),
        python=sys.version.split()[0],
        platform=platform.platform(),
        dependencies={name: _package_version(name) for name in _DEPENDENCIES},
    )


def version_command(
    *,
    as_json: Annotated[
        bool,
        Parameter(name="--json", help="Print a JSON document.", group=output_group),
    ] = False,
) -> int:
    """Show plano and dependency versions.

    Returns
    -------
    int
        Exit status code.
    """
    info = get_version_info()
    if as_json:
        sys.stdout.write(JSON_ENCODER.encode(info).decode("utf-8") + "\n")
        return ExitCode.SUCCESS
    lines = [f"plano {info.plano} (python {info.python}, {info.platform})"]
    lines.extend(
        f"  {name} {found or 'not installed'}" for name, found in info.dependencies.items()
    )
    sys.stdout.write("\n".join(lines) + "\n")
    return ExitCode.SUCCESS


__all__ = ["VersionInfo", "get_version", "get_version_info", "version_command"]
