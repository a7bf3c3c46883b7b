"""Resolve a user-supplied ref into a local branch usable as integration target."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from worktree_integrator.constants import DEFAULT_REMOTE, HEAD_REF

if TYPE_CHECKING:
    from worktree_integrator.integration.git import GitClient

_LOGGER = structlog.get_logger(__name__)
_REMOTES_PREFIX = "remotes/"


def resolve_target_branch(
    git: GitClient,
    repo_root: str,
    candidate: str,
    *,
    default_remote: str = DEFAULT_REMOTE,
) -> str:
    """Return a local branch name for ``candidate``.

    Resolution order:
    - empty or ``HEAD`` -> ``HEAD`` (planning only, never an execution target);
    - an existing local branch is returned unchanged;
    - ``remotes/<remote>/<name>`` -> local ``<name>`` tracking ``<remote>/<name>``;
    - ``<default_remote>/<candidate>`` exists -> local ``<candidate>`` tracking it;
    - anything else is returned unchanged and fails later if it is not a ref.

    At most one local branch is created. Creation failures raise
    ``GitCommandError``.
    """

    raw = candidate.strip()
    if not raw or raw == HEAD_REF:
        return HEAD_REF

    if git.ref_exists(repo_root, f"refs/heads/{raw}"):
        return raw

    if raw.startswith(_REMOTES_PREFIX):
        remote, _, name = raw[len(_REMOTES_PREFIX) :].partition("/")
        remote = remote or default_remote
        if name:
            if not git.ref_exists(repo_root, f"refs/heads/{name}"):
                _create_tracking_branch(git, repo_root, name, f"{remote}/{name}")
            return name

    if git.ref_exists(repo_root, f"refs/remotes/{default_remote}/{raw}"):
        _create_tracking_branch(git, repo_root, raw, f"{default_remote}/{raw}")
        return raw

    return raw


def _create_tracking_branch(git: GitClient, repo_root: str, name: str, upstream: str) -> None:
    git.run(["branch", "--track", name, upstream], repo_root)
    _LOGGER.info("integration_tracking_branch_created", branch=name, upstream=upstream)


__all__ = ["resolve_target_branch"]
