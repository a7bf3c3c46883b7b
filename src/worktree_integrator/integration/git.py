"""Git command wrapper on top of the command executor contract."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from worktree_integrator.constants import DEFAULT_GIT_EXECUTABLE
from worktree_integrator.integration.commands import (
    CommandExecutor,
    CommandResult,
    ShellCommandExecutor,
    build_command,
    split_lines,
)
from worktree_integrator.integration.errors import GitCommandError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

_T = TypeVar("_T")

_LOGGER = structlog.get_logger(__name__)


class GitClient:
    """Run git subcommands through a ``CommandExecutor``.

    ``run`` raises ``GitCommandError`` on non-zero exit unless ``check=False``.
    ``run_best_effort`` is the only place where a failing git command is
    tolerated: the failure is logged and ``None`` is returned.
    """

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        *,
        executable: str = DEFAULT_GIT_EXECUTABLE,
        logger: Any | None = None,
    ) -> None:
        self.executor: CommandExecutor = (
            executor if executor is not None else ShellCommandExecutor()
        )
        self.executable = executable
        self._logger = logger if logger is not None else _LOGGER

    def command(self, args: Sequence[str], *, env: Mapping[str, str] | None = None) -> str:
        return build_command(self.executable, args, env=env)

    def run(
        self,
        args: Sequence[str],
        cwd: Path | str,
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        command = self.command(args, env=env)
        result = self.executor.execute(command, cwd)
        if check and not result.ok:
            raise GitCommandError(
                command=result.command,
                cwd=result.cwd,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def shell(self, command: str, cwd: Path | str, *, check: bool = True) -> CommandResult:
        """Run a preassembled command string (values must already be quoted)."""
        result = self.executor.execute(command, cwd)
        if check and not result.ok:
            raise GitCommandError(
                command=result.command,
                cwd=result.cwd,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def run_best_effort(
        self,
        args: Sequence[str],
        cwd: Path | str,
        *,
        action: str,
    ) -> CommandResult | None:
        return best_effort(
            action,
            lambda: self.run(args, cwd),
            logger=self._logger,
            cwd=str(cwd),
        )

    def status_porcelain(self, cwd: Path | str) -> str:
        return self.run(["status", "--porcelain"], cwd).stdout

    def is_clean(self, cwd: Path | str) -> bool:
        return not self.status_porcelain(cwd).strip()

    def unmerged_files(self, cwd: Path | str) -> list[str]:
        result = self.run(["diff", "--name-only", "--diff-filter=U"], cwd, check=False)
        return split_lines(result.stdout)

    def ref_exists(self, repo_root: Path | str, ref: str) -> bool:
        result = self.run(["show-ref", "--verify", "--quiet", ref], repo_root, check=False)
        return result.ok

    def upstream_ref(self, cwd: Path | str) -> str | None:
        result = self.run(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"],
            cwd,
            check=False,
        )
        upstream = result.stdout.strip()
        if not result.ok or not upstream:
            return None
        return upstream


def best_effort(
    action: str,
    func: Callable[[], _T],
    *,
    logger: Any | None = None,
    default: _T | None = None,
    **context: object,
) -> _T | None:
    """Run a hygiene step whose failure must never reach the caller.

    The failure is logged as ``integration_cleanup_failed`` with ``action``
    and ``context`` fields; ``default`` is returned instead.
    """

    active_logger = logger if logger is not None else _LOGGER
    try:
        return func()
    except Exception as exc:  # noqa: BLE001 - best-effort boundary, logged below.
        active_logger.warning(
            "integration_cleanup_failed",
            action=action,
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        return default


__all__ = ["GitClient", "best_effort"]
