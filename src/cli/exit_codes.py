"""Exit code taxonomy for the plano CLI."""

from __future__ import annotations

from enum import IntEnum

from core.errors import ErrorKind, PlanoError


class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    Exit codes follow Unix conventions with domain-specific extensions:
    - 0: Success
    - 1-9: General errors (parse, validation, config)
    - 10-19: Pipeline stage errors
    - 20-29: Backend/integration errors
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    PARSE_ERROR = 2
    VALIDATION_ERROR = 3
    CONFIG_ERROR = 4

    # Pipeline stage errors (10-19)
    EXPORT_ERROR = 10

    # Backend errors (20-29)
    BACKEND_ERROR = 20
    DATAFUSION_ERROR = 21

    @classmethod
    def from_exception(cls, exc: BaseException) -> ExitCode:
        """Map an exception to an appropriate exit code.

        Parameters
        ----------
        exc
            Exception to classify.

        Returns
        -------
        ExitCode
            Exit code appropriate for the exception type.
        """
        cyclopts_code = _exit_code_for_cyclopts(exc)
        if cyclopts_code is not None:
            return cyclopts_code
        if isinstance(exc, PlanoError):
            return _KIND_EXIT_CODES.get(exc.kind, cls.GENERAL_ERROR)
        type_code = _exit_code_for_exception_type(exc)
        if type_code is not None:
            return type_code
        return cls.GENERAL_ERROR


_KIND_EXIT_CODES: dict[ErrorKind, ExitCode] = {
    ErrorKind.CONFIG: ExitCode.CONFIG_ERROR,
    ErrorKind.SCHEMA: ExitCode.VALIDATION_ERROR,
    ErrorKind.EXPORT: ExitCode.EXPORT_ERROR,
    ErrorKind.STORAGE: ExitCode.BACKEND_ERROR,
    ErrorKind.RELATIONAL: ExitCode.BACKEND_ERROR,
    ErrorKind.DATAFUSION: ExitCode.DATAFUSION_ERROR,
}


def _exit_code_for_cyclopts(exc: BaseException) -> ExitCode | None:
    module = exc.__class__.__module__
    if not module.startswith("cyclopts"):
        return None
    if exc.__class__.__name__ == "ValidationError":
        return ExitCode.VALIDATION_ERROR
    return ExitCode.PARSE_ERROR


def _exit_code_for_exception_type(exc: BaseException) -> ExitCode | None:
    if isinstance(exc, (FileNotFoundError, PermissionError)):
        return ExitCode.CONFIG_ERROR
    if isinstance(exc, OSError):
        return ExitCode.BACKEND_ERROR
    if isinstance(exc, (ValueError, TypeError)):
        return ExitCode.VALIDATION_ERROR
    return None


__all__ = ["ExitCode"]
