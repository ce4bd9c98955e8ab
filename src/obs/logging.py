"""Process logging setup for plano commands."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Uvicorn loggers drop their own handlers and propagate to the root so server
    and application records share one format.

    Parameters
    ----------
    level
        Logging level name, case-insensitive.
    """
    resolved = level.upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
    for name in _UVICORN_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(resolved)


__all__ = ["LOG_FORMAT", "configure_logging"]
