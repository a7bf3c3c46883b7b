"""Error taxonomy for worktree integration.

Conflicts are never raised; they are returned as ``IntegrationConflict``
results. Everything here is a failure the caller has to present.
"""

from __future__ import annotations


class IntegrationError(RuntimeError):
    """Base error for integration failures."""


class GitCommandError(IntegrationError):
    """Raised when a git command exits non-zero."""

    def __init__(
        self,
        *,
        command: str,
        cwd: str,
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = command
        self.cwd = cwd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"command failed ({returncode}): {command}"
        detail = stderr.strip() or stdout.strip()
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PlanningError(IntegrationError):
    """Raised when the commit comparison behind a plan cannot be computed."""


class SetupError(IntegrationError):
    """Raised when the disposable worktree cannot be prepared for replay."""


class ReplayError(IntegrationError):
    """Raised when a cherry-pick fails without leaving unmerged files."""

    def __init__(self, message: str, *, commit: str) -> None:
        self.commit = commit
        super().__init__(message)


__all__ = [
    "GitCommandError",
    "IntegrationError",
    "PlanningError",
    "ReplayError",
    "SetupError",
]
