"""Integration settings projected from the effective configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from worktree_integrator.constants import (
    DEFAULT_GIT_EXECUTABLE,
    DEFAULT_REMOTE,
    DEFAULT_STATE_DIR,
    DEFAULT_TEMP_PREFIX,
    DEFAULT_TEMP_ROOT,
)


def _expand(path: str) -> str:
    return os.path.expanduser(os.path.expandvars(path))


@dataclass(frozen=True, slots=True)
class IntegratorSettings:
    """Values the integrator needs at runtime."""

    git_executable: str = DEFAULT_GIT_EXECUTABLE
    default_remote: str = DEFAULT_REMOTE
    temp_root: str = field(default_factory=lambda: _expand(DEFAULT_TEMP_ROOT))
    temp_prefix: str = DEFAULT_TEMP_PREFIX
    fast_forward_upstream: bool = True
    sync_clean_worktrees: bool = True
    state_dir: str = field(default_factory=lambda: _expand(DEFAULT_STATE_DIR))

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> IntegratorSettings:
        """Build settings from a validated config mapping (see ``config.load_config``)."""

        git = _section(config, "git")
        integration = _section(config, "integration")
        state = _section(config, "state")
        defaults = cls()
        return cls(
            git_executable=str(git.get("executable", defaults.git_executable)),
            default_remote=str(git.get("default_remote", defaults.default_remote)),
            temp_root=_expand(str(integration.get("temp_root", defaults.temp_root))),
            temp_prefix=str(integration.get("temp_prefix", defaults.temp_prefix)),
            fast_forward_upstream=bool(
                integration.get("fast_forward_upstream", defaults.fast_forward_upstream)
            ),
            sync_clean_worktrees=bool(
                integration.get("sync_clean_worktrees", defaults.sync_clean_worktrees)
            ),
            state_dir=_expand(str(state.get("state_dir", defaults.state_dir))),
        )


def _section(config: Mapping[str, object], key: str) -> Mapping[str, object]:
    value = config.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


__all__ = ["IntegratorSettings"]
