"""Scripted command executor and builders shared by integration unit tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from worktree_integrator.integration.commands import CommandResult
from worktree_integrator.integration.models import IntegrationInProgress
from worktree_integrator.integration.settings import IntegratorSettings

REPO_ROOT: Final[str] = "/work/repo"
TEMP_ROOT: Final[str] = "/work/tmp"
TEMP_PREFIX: Final[str] = "wti-integrate-"
TEMP_PATH: Final[str] = f"{TEMP_ROOT}/{TEMP_PREFIX}AbC123"


@dataclass
class _Rule:
    fragment: str
    cwd: str | None
    returncode: int
    stdout: str
    stderr: str
    times: int | None

    def matches(self, command: str, cwd: str) -> bool:
        if self.times is not None and self.times <= 0:
            return False
        if self.cwd is not None and self.cwd != cwd:
            return False
        return self.fragment in command


@dataclass
class ScriptedExecutor:
    """Answer commands from registered rules; unmatched commands succeed silently.

    The longest matching fragment wins; among equal fragments the earliest
    registered rule with uses left wins.
    """

    calls: list[tuple[str, str]] = field(default_factory=list)
    _rules: list[_Rule] = field(default_factory=list)

    def on(
        self,
        fragment: str,
        *,
        cwd: str | None = None,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        times: int | None = None,
    ) -> ScriptedExecutor:
        self._rules.append(
            _Rule(
                fragment=fragment,
                cwd=cwd,
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
                times=times,
            )
        )
        return self

    def execute(self, command: str, cwd: Path | str) -> CommandResult:
        cwd_text = str(cwd)
        self.calls.append((command, cwd_text))
        candidates = [rule for rule in self._rules if rule.matches(command, cwd_text)]
        if not candidates:
            return CommandResult(command=command, cwd=cwd_text, returncode=0, stdout="", stderr="")
        longest = max(len(rule.fragment) for rule in candidates)
        rule = next(rule for rule in candidates if len(rule.fragment) == longest)
        if rule.times is not None:
            rule.times -= 1
        return CommandResult(
            command=command,
            cwd=cwd_text,
            returncode=rule.returncode,
            stdout=rule.stdout,
            stderr=rule.stderr,
        )

    def commands(self) -> list[str]:
        return [command for command, _cwd in self.calls]

    def index_of(self, fragment: str) -> int:
        for index, command in enumerate(self.commands()):
            if fragment in command:
                return index
        raise AssertionError(f"no command containing {fragment!r} in {self.commands()}")

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands())


def scripted_settings(**overrides: object) -> IntegratorSettings:
    values: dict[str, object] = {
        "temp_root": TEMP_ROOT,
        "temp_prefix": TEMP_PREFIX,
        "state_dir": "/work/state",
    }
    values.update(overrides)
    return IntegratorSettings(**values)  # type: ignore[arg-type]


def with_temp_worktree(executor: ScriptedExecutor, path: str = TEMP_PATH) -> ScriptedExecutor:
    return executor.on("mktemp -d", stdout=f"{path}\n")


def worktree_porcelain(*entries: tuple[str, str | None]) -> str:
    blocks: list[str] = []
    for path, branch in entries:
        lines = [f"worktree {path}", "HEAD 0123456789abcdef0123456789abcdef01234567"]
        lines.append(f"branch {branch}" if branch else "detached")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"


def paused_state(
    *,
    remaining: tuple[str, ...] = ("c2", "c3"),
    current: str | None = None,
    clean: tuple[str, ...] = ("/work/main",),
    repo_root: str = REPO_ROOT,
    temp_path: str = TEMP_PATH,
) -> IntegrationInProgress:
    return IntegrationInProgress(
        repo_root=repo_root,
        temp_worktree_path=temp_path,
        source_branch="feature",
        target_branch="main",
        clean_target_worktrees=clean,
        remaining_commits=remaining,
        current_commit=current if current is not None else remaining[0],
    )


__all__ = [
    "REPO_ROOT",
    "TEMP_PATH",
    "TEMP_PREFIX",
    "TEMP_ROOT",
    "ScriptedExecutor",
    "paused_state",
    "scripted_settings",
    "with_temp_worktree",
    "worktree_porcelain",
]
