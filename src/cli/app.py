"""Main application setup for the plano CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Literal

from cyclopts import App, Parameter
from cyclopts.config import Toml

from cli.commands.version import get_version
from cli.groups import session_group
from cli.invoke import invoke
from obs.logging import configure_logging

_HELP_EPILOGUE = """
Examples:
  plano serve --table-spec trips=/data/trips:year,month
  plano query --table-spec trips=/data/trips "SELECT count(*) FROM trips"
  plano export -t trips -o /data -p year -p month --timestamp-col started_at

Environment Variables:
  PLANO_LOG_LEVEL        Default log level (DEBUG, INFO, WARNING, ERROR)
  PLANO_BIND             Serving address as HOST:PORT
  PLANO_CACHE_CAPACITY   Query cache capacity
  DATABASE_URL           Relational source connection string
"""

app = App(
    name="plano",
    help="Partition-aware SQL over Parquet directory trees.",
    help_epilogue=_HELP_EPILOGUE,
    version=get_version(),
    version_flags=["--version", "-V"],
    default_parameter=Parameter(
        show_default=True,
        show_env_var=True,
    ),
    config=[
        Toml("plano.toml", must_exist=False, search_parents=True),
        Toml(
            "pyproject.toml",
            root_keys=("tool", "plano"),
            must_exist=False,
            search_parents=True,
        ),
    ],
    exit_on_error=True,
    print_error=True,
    help_on_error=False,
)

app.meta.group_parameters = session_group


@dataclass(frozen=True)
class SessionOptions:
    """Session-level configuration parameters."""

    log_level: Annotated[
        Literal["DEBUG", "INFO", "WARNING", "ERROR"],
        Parameter(
            name="--log-level",
            help="Logging verbosity level.",
            env_var="PLANO_LOG_LEVEL",
            group=session_group,
        ),
    ] = "INFO"


_DEFAULT_SESSION_OPTIONS = SessionOptions()


@app.meta.default
def meta_launcher(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    session: Annotated[SessionOptions, Parameter(name="*")] = _DEFAULT_SESSION_OPTIONS,
) -> int:
    """Configure logging, then dispatch to the selected command.

    Returns
    -------
    int
        Exit status code from command execution.
    """
    configure_logging(session.log_level)
    return invoke(app, list(tokens))


app.command("cli.commands.serve:serve_command", name="serve", alias="s")
app.command("cli.commands.query:query_command", name="query", alias="q")
app.command("cli.commands.export:export_command", name="export")
app.command("cli.commands.version:version_command", name="version", alias="v")


def main() -> None:
    """Run the plano CLI."""
    app.meta()


__all__ = ["app", "main"]
