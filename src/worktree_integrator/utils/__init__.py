"""Shared utilities."""

from worktree_integrator.utils.fs import atomic_write, ensure_directory

__all__ = ["atomic_write", "ensure_directory"]
