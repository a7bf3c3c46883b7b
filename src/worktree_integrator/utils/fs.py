"""
worktree-integrator — filesystem utilities

File: src/worktree_integrator/utils/fs.py

Purpose
- Durable writes for small state files that other processes may read at any time.

Functional requirements
- A reader sees either the previous content or the new content, never a partial file.
- Parent directories are created on demand.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "ensure_directory",
]


def ensure_directory(path: PathLike) -> Path:
    """Create ``path`` (and parents) if needed and return it as a ``Path``."""

    directory = Path(path).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory!s} is not a directory")
    return directory


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    A temp file is created next to the target, flushed and fsynced, then
    swapped in with ``os.replace``.
    """

    target = Path(path)
    target_parent = ensure_directory(target.parent).resolve(strict=True)

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        mode = "wb" if isinstance(data, bytes) else "w"
        with os.fdopen(fd, mode, encoding=None if isinstance(data, bytes) else encoding) as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(temp_path, target_parent / target.name)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def _fsync_directory(path: Path) -> None:
    """Directory fsync after ``os.replace``; skipped where unsupported."""

    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
