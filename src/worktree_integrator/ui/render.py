"""Output rendering for the worktree-integrator CLI.

File: src/worktree_integrator/ui/render.py

Purpose
- Thin rendering layer for CLI output.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Plain-text rendering must always work; color is only added on a TTY.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_ANSI_RESET = "\033[0m"
_ANSI_BOLD = "\033[1m"
_ANSI_RED = "\033[31m"
_ANSI_GREEN = "\033[32m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces plain-text output, with ANSI emphasis only when color is allowed.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _print(self, text: str = "") -> None:
        print(text, file=self._stream)

    def _style(self, text: str, code: str) -> str:
        if not self._color:
            return text
        return f"{code}{text}{_ANSI_RESET}"

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{self._style(title, _ANSI_BOLD)}")

    def success(self, text: str) -> None:
        self._print(self._style(text, _ANSI_GREEN))

    def error(self, text: str) -> None:
        self._print(self._style(text, _ANSI_RED))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def block(self, text: str, *, indent: str = "    ") -> None:
        """Print multi-line command output indented under the current section."""

        for line in text.rstrip("\n").splitlines():
            self._print(f"{indent}{line}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print left-aligned columns under a dashed header; nothing for no rows."""

        if not rows:
            return
        cells = [[str(value) for value in row[: len(headers)]] for row in rows]
        widths = [
            max([len(header), *(len(row[index]) for row in cells if index < len(row))])
            for index, header in enumerate(headers)
        ]

        def render_row(values: Sequence[str]) -> str:
            padded = [
                (values[index] if index < len(values) else "").ljust(width)
                for index, width in enumerate(widths)
            ]
            return "  " + "  ".join(padded).rstrip()

        if title:
            self.section(title)
        self._print(render_row(headers))
        self._print(render_row(["-" * width for width in widths]))
        for row in cells:
            self._print(render_row(row))

    def next_steps(self, steps: Sequence[str]) -> None:
        """Print actionable next-step hints."""

        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._print(f"  $ {step}")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
