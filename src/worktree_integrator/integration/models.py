"""Integration data model: plans, paused state, results and conflict snapshots."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal, TypeAlias


@dataclass(frozen=True, slots=True)
class WorktreeEntry:
    """One ``git worktree list --porcelain`` record."""

    path: str
    branch_ref: str | None


@dataclass(frozen=True, slots=True)
class CommitSummary:
    """Short description of a planned commit for previews."""

    sha: str
    short_sha: str
    subject: str


@dataclass(frozen=True, slots=True)
class IntegrationPlan:
    """Commits to replay from ``source_branch`` onto ``target_branch``, oldest first."""

    repo_root: str
    source_branch: str
    target_branch: str
    commits: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.commits


@dataclass(frozen=True, slots=True)
class ConflictDetails:
    """Snapshot of a paused disposable worktree."""

    status_porcelain: str
    unmerged_files: tuple[str, ...]
    diff: str
    current_patch_meta: str
    current_patch: str

    def to_dict(self) -> dict[str, object]:
        return {
            "status_porcelain": self.status_porcelain,
            "unmerged_files": list(self.unmerged_files),
            "diff": self.diff,
            "current_patch_meta": self.current_patch_meta,
            "current_patch": self.current_patch,
        }


@dataclass(frozen=True, slots=True)
class IntegrationInProgress:
    """Resumable state of a replay paused on a conflict.

    ``current_commit`` is the head of ``remaining_commits`` when the pause is
    produced. ``clean_target_worktrees`` is captured once, before replay
    starts, and is carried unchanged through every pause/resume cycle.
    """

    repo_root: str
    temp_worktree_path: str
    source_branch: str
    target_branch: str
    clean_target_worktrees: tuple[str, ...]
    remaining_commits: tuple[str, ...]
    current_commit: str

    def to_dict(self) -> dict[str, object]:
        return {
            "repo_root": self.repo_root,
            "temp_worktree_path": self.temp_worktree_path,
            "source_branch": self.source_branch,
            "target_branch": self.target_branch,
            "clean_target_worktrees": list(self.clean_target_worktrees),
            "remaining_commits": list(self.remaining_commits),
            "current_commit": self.current_commit,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> IntegrationInProgress:
        """Rebuild a paused state, raising ``ValueError`` on malformed payloads."""

        remaining = _require_text_list(payload, "remaining_commits")
        if not remaining:
            raise ValueError("remaining_commits must not be empty for a paused integration")
        return cls(
            repo_root=_require_text(payload, "repo_root"),
            temp_worktree_path=_require_text(payload, "temp_worktree_path"),
            source_branch=_require_text(payload, "source_branch"),
            target_branch=_require_text(payload, "target_branch"),
            clean_target_worktrees=_require_text_list(payload, "clean_target_worktrees"),
            remaining_commits=remaining,
            current_commit=_require_text(payload, "current_commit"),
        )


@dataclass(frozen=True, slots=True)
class IntegrationNoOp:
    reason: str
    kind: Literal["noop"] = "noop"


@dataclass(frozen=True, slots=True)
class IntegrationSuccess:
    moved_count: int
    kind: Literal["success"] = "success"


@dataclass(frozen=True, slots=True)
class IntegrationConflict:
    state: IntegrationInProgress
    details: ConflictDetails
    kind: Literal["conflict"] = "conflict"


IntegrationResult: TypeAlias = IntegrationNoOp | IntegrationSuccess | IntegrationConflict


def _require_text(payload: Mapping[str, object], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _require_text_list(payload: Mapping[str, object], key: str) -> tuple[str, ...]:
    value = payload.get(key)
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise ValueError(f"{key} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"{key} must contain only non-empty strings")
        items.append(item)
    return tuple(items)


__all__ = [
    "CommitSummary",
    "ConflictDetails",
    "IntegrationConflict",
    "IntegrationInProgress",
    "IntegrationNoOp",
    "IntegrationPlan",
    "IntegrationResult",
    "IntegrationSuccess",
    "WorktreeEntry",
]
