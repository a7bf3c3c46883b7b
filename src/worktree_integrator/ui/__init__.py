"""User-facing command-line surface."""

from worktree_integrator.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIRenderer", "create_renderer"]
