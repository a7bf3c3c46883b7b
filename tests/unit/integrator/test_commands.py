"""
worktree-integrator — unit tests for the command execution contract

File: tests/unit/integrator/test_commands.py

Purpose
- Validate command string assembly, quoting, and the local shell executor.
"""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING

import pytest

from worktree_integrator.integration.commands import (
    SPAWN_FAILURE_RETURNCODE,
    ShellCommandExecutor,
    build_command,
    split_lines,
)
from worktree_integrator.integration.errors import GitCommandError
from worktree_integrator.integration.git import GitClient, best_effort

from . import ScriptedExecutor

if TYPE_CHECKING:
    from pathlib import Path


def test_build_command_quotes_every_argument() -> None:
    command = build_command("git", ["commit", "-m", "it's done; rm -rf /"])

    assert shlex.split(command) == ["git", "commit", "-m", "it's done; rm -rf /"]


def test_build_command_prefixes_sorted_environment() -> None:
    command = build_command("git", ["cherry-pick", "--continue"], env={"B": "2", "A": "x y"})

    assert command == "A='x y' B=2 git cherry-pick --continue"


def test_build_command_rejects_invalid_environment_names() -> None:
    with pytest.raises(ValueError, match="invalid environment variable name"):
        build_command("git", ["status"], env={"BAD-NAME": "1"})


def test_split_lines_drops_blank_lines_and_whitespace() -> None:
    assert split_lines("  a \n\n b\r\n   \n") == ["a", "b"]
    assert split_lines(None) == []


def test_shell_executor_captures_output_and_exit_code(tmp_path: Path) -> None:
    executor = ShellCommandExecutor()

    result = executor.execute("printf 'out'; printf 'err' >&2; exit 3", tmp_path)

    assert result.returncode == 3
    assert result.stdout == "out"
    assert result.stderr == "err"
    assert result.ok is False


def test_shell_executor_disables_git_prompts(tmp_path: Path) -> None:
    result = ShellCommandExecutor().execute('printf "%s" "$GIT_TERMINAL_PROMPT"', tmp_path)

    assert result.stdout == "0"


def test_shell_executor_reports_missing_directory_as_failed_result(tmp_path: Path) -> None:
    missing = tmp_path / "gone"

    result = ShellCommandExecutor().execute("true", missing)

    assert result.returncode == SPAWN_FAILURE_RETURNCODE
    assert "gone" in result.stderr


def test_git_client_raises_on_failure_when_checked() -> None:
    executor = ScriptedExecutor().on("git status", returncode=128, stderr="fatal: not a repo")
    git = GitClient(executor)

    with pytest.raises(GitCommandError) as excinfo:
        git.run(["status", "--porcelain"], "/nowhere")

    assert excinfo.value.returncode == 128
    assert "fatal: not a repo" in str(excinfo.value)
    assert git.run(["status", "--porcelain"], "/nowhere", check=False).returncode == 128


def test_git_client_uses_configured_executable() -> None:
    executor = ScriptedExecutor()
    GitClient(executor, executable="/opt/git/bin/git").run(["status"], "/repo")

    assert executor.commands() == ["/opt/git/bin/git status"]


def test_run_best_effort_swallows_failures() -> None:
    executor = ScriptedExecutor().on("git worktree prune", returncode=1, stderr="boom")
    git = GitClient(executor)

    assert git.run_best_effort(["worktree", "prune"], "/repo", action="prune") is None


def test_best_effort_returns_default_on_exception() -> None:
    def explode() -> list[str]:
        raise RuntimeError("nope")

    assert best_effort("explode", explode, default=["fallback"]) == ["fallback"]


def test_upstream_ref_is_none_without_tracking_branch() -> None:
    executor = ScriptedExecutor().on("@{u}", returncode=128, stderr="fatal: no upstream")

    assert GitClient(executor).upstream_ref("/repo") is None


def test_upstream_ref_returns_tracking_branch() -> None:
    executor = ScriptedExecutor().on("@{u}", stdout="origin/main\n")

    assert GitClient(executor).upstream_ref("/repo") == "origin/main"
