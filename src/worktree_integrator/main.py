"""Executable CLI entrypoint for ``worktree_integrator``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit-code contract.

    ``PAUSED_ON_CONFLICT`` is not a failure: the integration is stored and can
    be resumed with ``continue`` or dropped with ``abort``.
    """

    SUCCESS = 0
    PAUSED_ON_CONFLICT = 1
    CONFIG_ERROR = 2
    INTEGRATION_ERROR = 3
    INTERNAL_ERROR = 4


_KNOWN_CODES = frozenset(int(code) for code in ExitCode)

# Errors caused by the caller's environment rather than by git.
_ENVIRONMENT_ERRORS: tuple[type[BaseException], ...] = (
    FileNotFoundError,
    NotADirectoryError,
    PermissionError,
    ValueError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m worktree_integrator`` and the console script."""

    try:
        from worktree_integrator.ui.cli import run_cli

        return _exit_code_from(run_cli(argv))
    except SystemExit as exc:
        return _exit_code_from(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = classify_exception(exc)
        _report(exc, exit_code)
        return int(exit_code)


def classify_exception(exc: BaseException) -> ExitCode:
    """Map ``exc`` (or the first recognised link of its chain) to an exit code."""

    from worktree_integrator.config.loader import ConfigLoadError
    from worktree_integrator.config.schema import ConfigValidationError
    from worktree_integrator.integration.errors import IntegrationError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
        ((IntegrationError,), ExitCode.INTEGRATION_ERROR),
        (_ENVIRONMENT_ERRORS, ExitCode.CONFIG_ERROR),
    )
    for link in _exception_chain(exc):
        for error_types, code in routes:
            if isinstance(link, error_types):
                return code
    return ExitCode.INTERNAL_ERROR


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__


def _exit_code_from(raw_code: object) -> int:
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, int) and raw_code in _KNOWN_CODES:
        return raw_code
    if isinstance(raw_code, str) and raw_code.strip():
        print(raw_code.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _report(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    message = str(exc).strip() or type(exc).__name__
    print(f"error: {message}", file=sys.stderr)


__all__ = ["ExitCode", "classify_exception", "cli_entrypoint"]
