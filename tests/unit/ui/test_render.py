"""Unit tests for CLI output rendering."""

from __future__ import annotations

import io

import pytest

from worktree_integrator.ui.render import CLIRenderer


class _TTY(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_plain_output_without_tty() -> None:
    stream = io.StringIO()
    renderer = CLIRenderer(stream=stream)

    renderer.kv("Target", "main")
    renderer.success("Moved 2 commit(s).")
    renderer.items(["a.txt", "b.txt"])

    assert stream.getvalue() == "Target: main\nMoved 2 commit(s).\n  - a.txt\n  - b.txt\n"


def test_color_only_on_tty_and_respects_no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    colored = _TTY()
    CLIRenderer(stream=colored).error("conflict")
    assert colored.getvalue() == "\033[31mconflict\033[0m\n"

    flagged = _TTY()
    CLIRenderer(stream=flagged, no_color=True).error("conflict")
    assert flagged.getvalue() == "conflict\n"

    monkeypatch.setenv("NO_COLOR", "1")
    env_disabled = _TTY()
    CLIRenderer(stream=env_disabled).error("conflict")
    assert env_disabled.getvalue() == "conflict\n"


def test_table_aligns_columns_and_skips_empty_rows() -> None:
    stream = io.StringIO()
    renderer = CLIRenderer(stream=stream)

    renderer.table(["COMMIT", "SUBJECT"], [])
    renderer.table(["COMMIT", "SUBJECT"], [["abc1234", "first"], ["def5678", "a longer one"]])

    lines = stream.getvalue().splitlines()
    assert lines == [
        "  COMMIT   SUBJECT",
        "  -------  ------------",
        "  abc1234  first",
        "  def5678  a longer one",
    ]


def test_block_and_next_steps() -> None:
    stream = io.StringIO()
    renderer = CLIRenderer(stream=stream)

    renderer.block("line one\nline two\n")
    renderer.next_steps(["worktree-integrator continue"])
    renderer.next_steps([])

    assert stream.getvalue() == (
        "    line one\n    line two\n\nNext steps:\n  $ worktree-integrator continue\n"
    )
