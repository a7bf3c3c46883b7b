"""
worktree-integrator

Purpose
- Move commits made in an isolated git worktree onto a target branch with
  cherry-pick, pause on conflicts, resume or abort, and fast-forward other
  clean checkouts of the target branch afterwards.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
