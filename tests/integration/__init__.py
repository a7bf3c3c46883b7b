"""
worktree-integrator — real-repository test helpers

File: tests/integration/__init__.py

Purpose
- Build throwaway git repositories with worktrees for end-to-end integration tests.

Functional requirements
- Never read the developer's global or system git configuration.
- Must not trigger network access.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not found")


def isolate_git_environment(monkeypatch: pytest.MonkeyPatch, home: Path) -> None:
    """Point HOME/XDG at ``home`` and disable system config and prompts."""

    home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for name in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_EDITOR", "NO_COLOR"):
        monkeypatch.delenv(name, raising=False)


def run_git(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=os.environ.copy(),
        check=False,
        text=True,
        capture_output=True,
    )
    if check and result.returncode != 0:
        cmd = "git " + " ".join(args)
        detail = result.stderr.strip() or result.stdout.strip()
        raise RuntimeError(f"git command failed: {cmd}: {detail}")
    return result


def commit_file(cwd: Path, relative: str, content: str, message: str) -> str:
    """Write ``relative`` under ``cwd``, commit it and return the new commit id."""

    path = cwd / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    run_git(cwd, "add", relative)
    run_git(cwd, "commit", "--quiet", "-m", message)
    return run_git(cwd, "rev-parse", "HEAD").stdout.strip()


def init_repo(root: Path) -> None:
    """Create ``root`` on ``main`` with one commit holding ``shared.txt`` and ``README``."""

    root.mkdir(parents=True, exist_ok=True)
    run_git(root, "init", "--initial-branch=main", "--quiet")
    run_git(root, "config", "user.name", "Integrator Test")
    run_git(root, "config", "user.email", "integrator-test@example.com")
    run_git(root, "config", "commit.gpgsign", "false")
    (root / "README").write_text("readme\n", encoding="utf-8")
    run_git(root, "add", "README")
    commit_file(root, "shared.txt", "base\n", "A")


def subjects(cwd: Path, branch: str) -> list[str]:
    """Commit subjects on ``branch``, oldest first."""

    output = run_git(cwd, "log", "--reverse", "--format=%s", branch).stdout
    return [line for line in output.splitlines() if line]


def worktree_paths(cwd: Path) -> list[str]:
    output = run_git(cwd, "worktree", "list", "--porcelain").stdout
    prefix = "worktree "
    return [line[len(prefix) :] for line in output.splitlines() if line.startswith(prefix)]


__all__ = [
    "commit_file",
    "init_repo",
    "isolate_git_environment",
    "requires_git",
    "run_git",
    "subjects",
    "worktree_paths",
]
