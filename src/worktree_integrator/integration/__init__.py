"""
worktree-integrator — integration package

File: src/worktree_integrator/integration/__init__.py

Purpose
- Move commits from a session branch onto a target branch with cherry-pick,
  inside a disposable worktree, pausing on conflicts.

Functional requirements
- Planning is read-only apart from creating at most one tracking branch.
- Conflicts are returned as data; every other failure is an ``IntegrationError``.
- Disposable worktrees never outlive a finished, failed or aborted integration.
"""

from worktree_integrator.integration.commands import (
    CommandExecutor,
    CommandResult,
    ShellCommandExecutor,
)
from worktree_integrator.integration.engine import WorktreeIntegrator
from worktree_integrator.integration.errors import (
    GitCommandError,
    IntegrationError,
    PlanningError,
    ReplayError,
    SetupError,
)
from worktree_integrator.integration.git import GitClient
from worktree_integrator.integration.models import (
    CommitSummary,
    ConflictDetails,
    IntegrationConflict,
    IntegrationInProgress,
    IntegrationNoOp,
    IntegrationPlan,
    IntegrationResult,
    IntegrationSuccess,
    WorktreeEntry,
)
from worktree_integrator.integration.settings import IntegratorSettings
from worktree_integrator.integration.state_store import PausedIntegrationStore, state_key_for

__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommitSummary",
    "ConflictDetails",
    "GitClient",
    "GitCommandError",
    "IntegrationConflict",
    "IntegrationError",
    "IntegrationInProgress",
    "IntegrationNoOp",
    "IntegrationPlan",
    "IntegrationResult",
    "IntegrationSuccess",
    "IntegratorSettings",
    "PausedIntegrationStore",
    "PlanningError",
    "ReplayError",
    "SetupError",
    "ShellCommandExecutor",
    "WorktreeEntry",
    "WorktreeIntegrator",
    "state_key_for",
]
