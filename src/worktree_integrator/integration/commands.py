"""Narrow command-execution contract used by every integration component.

The integrator never touches the repository through a library. Each step is a
shell command string executed in a working directory, and only the exit code,
stdout and stderr come back. Tests swap in a scripted executor.
"""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

# Exit code reported when the shell itself could not be started in ``cwd``.
SPAWN_FAILURE_RETURNCODE = 127


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized result of one executed command."""

    command: str
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandExecutor(Protocol):
    """Execute a shell command string in a directory."""

    def execute(self, command: str, cwd: Path | str) -> CommandResult:
        """Run ``command`` with ``cwd`` as working directory."""


class ShellCommandExecutor:
    """Run commands through the local shell with git prompts disabled."""

    def __init__(self, *, env_overrides: Mapping[str, str] | None = None) -> None:
        self._env_overrides = dict(env_overrides or {})

    def execute(self, command: str, cwd: Path | str) -> CommandResult:
        run_cwd = Path(cwd).expanduser()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=run_cwd,
                env=env,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            return CommandResult(
                command=command,
                cwd=run_cwd.as_posix(),
                returncode=SPAWN_FAILURE_RETURNCODE,
                stdout="",
                stderr=f"unable to run command in {run_cwd.as_posix()}: {exc}",
            )

        return CommandResult(
            command=command,
            cwd=run_cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def shell_quote(value: str) -> str:
    """Quote one interpolated value for a POSIX shell command string."""

    return shlex.quote(value)


def build_command(
    program: str,
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
) -> str:
    """Join ``program`` and ``args`` into a command string, quoting every value."""

    parts: list[str] = []
    for name in sorted(env or {}):
        if not name.isidentifier():
            raise ValueError(f"invalid environment variable name: {name!r}")
        parts.append(f"{name}={shell_quote((env or {})[name])}")
    parts.append(shell_quote(program))
    parts.extend(shell_quote(arg) for arg in args)
    return " ".join(parts)


def split_lines(text: str | None) -> list[str]:
    """Split command output into stripped, non-empty lines."""

    return [line.strip() for line in (text or "").splitlines() if line.strip()]


__all__ = [
    "SPAWN_FAILURE_RETURNCODE",
    "CommandExecutor",
    "CommandResult",
    "ShellCommandExecutor",
    "build_command",
    "shell_quote",
    "split_lines",
]
