"""Command dispatch with exit-code mapping."""

from __future__ import annotations

import logging
import time

from cyclopts import App
from cyclopts.bind import normalize_tokens
from cyclopts.exceptions import CycloptsError

from cli.exit_codes import ExitCode

_LOGGER = logging.getLogger(__name__)


def _exit_code_for_result(result: object) -> int:
    if result is None:
        return ExitCode.SUCCESS
    if isinstance(result, int):
        return int(result)
    _LOGGER.warning("Unexpected command return type: %s", type(result).__name__)
    return ExitCode.GENERAL_ERROR


def invoke(app: App, tokens: list[str] | None) -> int:
    """Parse ``tokens`` against ``app`` and run the selected command.

    Parse errors are printed by cyclopts; command failures are logged with
    their traceback. Both are mapped to an exit code instead of propagating.

    Returns
    -------
    int
        Process exit code.
    """
    normalized = normalize_tokens(tokens)
    t0 = time.perf_counter()
    try:
        command, bound, _ignored = app.parse_args(
            normalized,
            exit_on_error=False,
            print_error=True,
        )
    except CycloptsError as exc:
        return ExitCode.from_exception(exc)
    name = getattr(command, "__qualname__", repr(command))
    try:
        result = command(*bound.args, **bound.kwargs)
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted.")
        return ExitCode.SUCCESS
    except Exception as exc:
        _LOGGER.exception("Command execution failed.")
        return ExitCode.from_exception(exc)
    _LOGGER.debug("Command %s finished in %.1fms", name, (time.perf_counter() - t0) * 1000.0)
    return _exit_code_for_result(result)


__all__ = ["invoke"]
