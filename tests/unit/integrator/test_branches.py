"""Unit tests for target branch resolution."""

from __future__ import annotations

import pytest

from worktree_integrator.integration.branches import resolve_target_branch
from worktree_integrator.integration.errors import GitCommandError
from worktree_integrator.integration.git import GitClient

from . import REPO_ROOT, ScriptedExecutor


def _missing_refs() -> ScriptedExecutor:
    return ScriptedExecutor().on("show-ref", returncode=1)


@pytest.mark.parametrize("candidate", ["", "   ", "HEAD"])
def test_blank_or_head_resolves_to_head_without_git_calls(candidate: str) -> None:
    executor = ScriptedExecutor()

    assert resolve_target_branch(GitClient(executor), REPO_ROOT, candidate) == "HEAD"
    assert executor.calls == []


def test_existing_local_branch_is_returned_unchanged() -> None:
    executor = ScriptedExecutor()

    assert resolve_target_branch(GitClient(executor), REPO_ROOT, "main") == "main"
    assert executor.commands() == ["git show-ref --verify --quiet refs/heads/main"]


def test_remotes_prefix_creates_tracking_branch() -> None:
    executor = _missing_refs()

    resolved = resolve_target_branch(GitClient(executor), REPO_ROOT, "remotes/upstream/dev")

    assert resolved == "dev"
    assert executor.commands()[-1] == "git branch --track dev upstream/dev"


def test_remotes_prefix_reuses_existing_local_branch() -> None:
    executor = _missing_refs().on("refs/heads/dev", returncode=0)

    resolved = resolve_target_branch(GitClient(executor), REPO_ROOT, "remotes/origin/dev")

    assert resolved == "dev"
    assert not executor.ran("branch --track")


def test_bare_name_on_default_remote_creates_tracking_branch() -> None:
    executor = _missing_refs().on("refs/remotes/mirror/topic", returncode=0)

    resolved = resolve_target_branch(
        GitClient(executor), REPO_ROOT, "topic", default_remote="mirror"
    )

    assert resolved == "topic"
    assert executor.commands()[-1] == "git branch --track topic mirror/topic"


def test_unknown_name_is_returned_unchanged_without_creating_branches() -> None:
    executor = _missing_refs()

    assert resolve_target_branch(GitClient(executor), REPO_ROOT, "nowhere") == "nowhere"
    assert not executor.ran("branch --track")


def test_tracking_branch_creation_failure_raises() -> None:
    executor = _missing_refs()
    executor.on("refs/remotes/origin/topic", returncode=0)
    executor.on("branch --track", returncode=128, stderr="fatal: not a valid object name")

    with pytest.raises(GitCommandError, match="not a valid object name"):
        resolve_target_branch(GitClient(executor), REPO_ROOT, "topic")
