"""Worktree inventory, clean-worktree sync and disposable worktree lifecycle."""

from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING

import structlog

from worktree_integrator.integration.commands import shell_quote
from worktree_integrator.integration.errors import SetupError
from worktree_integrator.integration.git import best_effort
from worktree_integrator.integration.models import WorktreeEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from worktree_integrator.integration.git import GitClient

_LOGGER = structlog.get_logger(__name__)


def parse_worktree_porcelain(output: str) -> list[WorktreeEntry]:
    """Parse ``git worktree list --porcelain`` output.

    Each record starts at a ``worktree <path>`` line; a later ``branch <ref>``
    line names the checked-out branch. Detached worktrees have no branch line.
    """

    entries: list[WorktreeEntry] = []
    path: str | None = None
    branch_ref: str | None = None

    for line in output.splitlines():
        if line.startswith("worktree "):
            if path:
                entries.append(WorktreeEntry(path=path, branch_ref=branch_ref))
            path = line[len("worktree ") :].strip()
            branch_ref = None
            continue
        if path is None:
            continue
        if line.startswith("branch "):
            branch_ref = line[len("branch ") :].strip() or None

    if path:
        entries.append(WorktreeEntry(path=path, branch_ref=branch_ref))
    return entries


def list_worktrees(git: GitClient, repo_root: str) -> list[WorktreeEntry]:
    """Return every worktree attached to ``repo_root``."""

    result = git.run(["worktree", "list", "--porcelain"], repo_root)
    return parse_worktree_porcelain(result.stdout)


def compute_clean_worktrees_to_sync(
    git: GitClient,
    repo_root: str,
    target_branch: str,
    exclude_paths: Iterable[str] = (),
) -> list[str]:
    """Worktrees checked out on ``target_branch`` with no pending changes.

    A worktree whose status cannot be read is treated as dirty.
    """

    target_ref = f"refs/heads/{target_branch}"
    excluded = {path_key(path) for path in exclude_paths}

    clean: list[str] = []
    for entry in list_worktrees(git, repo_root):
        if entry.branch_ref != target_ref:
            continue
        if path_key(entry.path) in excluded:
            continue
        status = git.run(["status", "--porcelain"], entry.path, check=False)
        if status.ok and not status.stdout.strip():
            clean.append(entry.path)
        else:
            _LOGGER.debug(
                "integration_worktree_skipped",
                path=entry.path,
                reason="dirty" if status.ok else "status_failed",
            )
    return clean


def sync_clean_worktrees(git: GitClient, paths: Sequence[str]) -> None:
    """Hard-reset each worktree to its branch tip; one failure never stops the rest."""

    for path in paths:
        result = git.run_best_effort(["reset", "--hard"], path, action="sync_clean_worktree")
        if result is not None:
            _LOGGER.info("integration_worktree_synced", path=path)


def create_temp_worktree(
    git: GitClient,
    repo_root: str,
    target_branch: str,
    *,
    temp_root: str,
    prefix: str,
) -> str:
    """Allocate a namespaced directory and check ``target_branch`` out into it.

    The returned path is physical (symlinks resolved) so it compares equal to
    the paths git reports in the worktree inventory.
    """

    template = posixpath.join(temp_root, f"{prefix}XXXXXX")
    allocate = (
        f"mkdir -p {shell_quote(temp_root)} && "
        f"dir=$(mktemp -d {shell_quote(template)}) && "
        'cd "$dir" && pwd -P'
    )
    allocated = git.shell(allocate, repo_root, check=False)
    temp_path = allocated.stdout.strip()
    if not allocated.ok or not temp_path:
        detail = allocated.stderr.strip() or "no directory returned"
        raise SetupError(f"failed to allocate temporary worktree directory: {detail}")

    added = git.run(
        ["worktree", "add", "--force", temp_path, target_branch], repo_root, check=False
    )
    if not added.ok:
        git.shell(f"rmdir {shell_quote(temp_path)}", repo_root, check=False)
        detail = added.stderr.strip() or added.stdout.strip() or "git worktree add failed"
        raise SetupError(f"failed to create temporary worktree for {target_branch}: {detail}")
    return temp_path


def remove_temp_worktree(git: GitClient, repo_root: str, temp_path: str) -> None:
    """Remove and prune a disposable worktree. An already absent worktree is fine."""

    removed = best_effort(
        "remove_temp_worktree",
        lambda: git.run(["worktree", "remove", "--force", temp_path], repo_root, check=False),
        path=temp_path,
    )
    if removed is not None and not removed.ok and _is_registered(git, repo_root, temp_path):
        _LOGGER.warning(
            "integration_cleanup_failed",
            action="remove_temp_worktree",
            path=temp_path,
            error=removed.stderr.strip() or removed.stdout.strip(),
        )
    git.run_best_effort(["worktree", "prune"], repo_root, action="prune_worktrees")


def find_stray_temp_worktrees(
    entries: Iterable[WorktreeEntry],
    *,
    temp_root: str,
    prefix: str,
    keep_paths: Iterable[str] = (),
) -> list[WorktreeEntry]:
    """Inventory entries that live in the disposable namespace and are not kept."""

    root_key = path_key(temp_root)
    kept = {path_key(path) for path in keep_paths}
    strays: list[WorktreeEntry] = []
    for entry in entries:
        key = path_key(entry.path)
        if posixpath.dirname(key) != root_key:
            continue
        if not posixpath.basename(key).startswith(prefix):
            continue
        if key in kept:
            continue
        strays.append(entry)
    return strays


def path_key(path: str) -> str:
    """Normalize a path for comparison without touching the filesystem."""

    return posixpath.normpath(path.replace("\\", "/"))


def _is_registered(git: GitClient, repo_root: str, temp_path: str) -> bool:
    entries = (
        best_effort(
            "list_worktrees",
            lambda: list_worktrees(git, repo_root),
            repo_root=repo_root,
        )
        or []
    )
    target = path_key(temp_path)
    return any(path_key(entry.path) == target for entry in entries)


__all__ = [
    "compute_clean_worktrees_to_sync",
    "create_temp_worktree",
    "find_stray_temp_worktrees",
    "list_worktrees",
    "parse_worktree_porcelain",
    "path_key",
    "remove_temp_worktree",
    "sync_clean_worktrees",
]
