"""Stable constants shared across integrator modules."""

from __future__ import annotations

from typing import Final

# Git defaults.
DEFAULT_GIT_EXECUTABLE: Final[str] = "git"
DEFAULT_REMOTE: Final[str] = "origin"
HEAD_REF: Final[str] = "HEAD"

# Disposable worktree namespace.
DEFAULT_TEMP_ROOT: Final[str] = "~/.config/worktree-integrator/tmp"
DEFAULT_TEMP_PREFIX: Final[str] = "wti-integrate-"

# Paused integration store.
DEFAULT_STATE_DIR: Final[str] = "~/.local/state/worktree-integrator"

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
PAUSED_STATE_SCHEMA_VERSION: Final[int] = 1

NOOP_REASON_NO_COMMITS: Final[str] = "No commits to move"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_GIT_EXECUTABLE",
    "DEFAULT_REMOTE",
    "DEFAULT_STATE_DIR",
    "DEFAULT_TEMP_PREFIX",
    "DEFAULT_TEMP_ROOT",
    "HEAD_REF",
    "NOOP_REASON_NO_COMMITS",
    "PAUSED_STATE_SCHEMA_VERSION",
]
