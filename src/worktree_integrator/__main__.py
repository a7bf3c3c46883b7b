"""Module entrypoint for ``python -m worktree_integrator``."""

from __future__ import annotations

from worktree_integrator.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
