"""Integration planning: which source commits are genuinely new on the target.

Two comparisons are combined. ``git cherry`` marks commits whose patch is not
yet on the target (``+``) but says nothing reliable about order and may skip
merge commits. ``git rev-list --reverse target..source`` gives ancestry order
but includes commits already applied by an equivalent patch. The plan is the
rev-list order filtered to the ``+`` set.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from worktree_integrator.constants import DEFAULT_REMOTE
from worktree_integrator.integration.branches import resolve_target_branch
from worktree_integrator.integration.commands import split_lines
from worktree_integrator.integration.errors import GitCommandError, PlanningError
from worktree_integrator.integration.models import CommitSummary, IntegrationPlan

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from worktree_integrator.integration.git import GitClient

_LOGGER = structlog.get_logger(__name__)

_CHERRY_NEW_COMMIT_RE = re.compile(r"^\+\s+([0-9a-f]{7,64})\b", re.IGNORECASE)
_FIELD_SEPARATOR = "\x1f"
DEFAULT_PREVIEW_LIMIT = 50


def parse_cherry_output(output: str) -> set[str]:
    """Return the commit ids ``git cherry`` marks as not yet on upstream."""

    novel: set[str] = set()
    for line in split_lines(output):
        match = _CHERRY_NEW_COMMIT_RE.match(line)
        if match:
            novel.add(match.group(1))
    return novel


def order_novel_commits(ordered: Sequence[str], novel: Collection[str]) -> tuple[str, ...]:
    """Keep ``ordered`` commits that are in ``novel``, preserving ``ordered``."""

    return tuple(sha for sha in ordered if sha in novel)


def compute_integrate_plan(
    git: GitClient,
    repo_root: str,
    source_branch: str,
    target_branch: str,
    *,
    default_remote: str = DEFAULT_REMOTE,
) -> IntegrationPlan:
    """Compute the ordered commits to move from ``source_branch`` to ``target_branch``.

    Only the branch resolver may write (it can create one tracking branch);
    everything else is read-only.
    """

    source = source_branch.strip()
    target_raw = target_branch.strip()
    if not source or not target_raw:
        return IntegrationPlan(
            repo_root=repo_root,
            source_branch=source,
            target_branch=target_raw,
        )

    try:
        target = resolve_target_branch(git, repo_root, target_raw, default_remote=default_remote)
        cherry = git.run(["cherry", target, source], repo_root)
        rev_list = git.run(["rev-list", "--reverse", f"{target}..{source}"], repo_root)
    except GitCommandError as exc:
        raise PlanningError(
            f"unable to compare {source!r} against {target_raw!r}: {exc}"
        ) from exc

    commits = order_novel_commits(split_lines(rev_list.stdout), parse_cherry_output(cherry.stdout))
    _LOGGER.info(
        "integration_plan_computed",
        repo_root=repo_root,
        source_branch=source,
        target_branch=target,
        commit_count=len(commits),
    )
    return IntegrationPlan(
        repo_root=repo_root,
        source_branch=source,
        target_branch=target,
        commits=commits,
    )


def describe_commits(
    git: GitClient,
    repo_root: str,
    commits: Sequence[str],
    *,
    limit: int = DEFAULT_PREVIEW_LIMIT,
) -> list[CommitSummary]:
    """Summaries of the newest ``limit`` planned commits, newest first."""

    if limit <= 0 or not commits:
        return []
    newest_first = list(reversed(commits[-limit:]))
    result = git.run(
        ["show", "-s", "--format=%H%x1f%h%x1f%s", *newest_first],
        repo_root,
    )

    summaries: list[CommitSummary] = []
    for line in result.stdout.splitlines():
        sha, _, rest = line.partition(_FIELD_SEPARATOR)
        short_sha, _, subject = rest.partition(_FIELD_SEPARATOR)
        if not sha.strip():
            continue
        summaries.append(
            CommitSummary(sha=sha.strip(), short_sha=short_sha.strip(), subject=subject.strip())
        )
    return summaries


__all__ = [
    "DEFAULT_PREVIEW_LIMIT",
    "compute_integrate_plan",
    "describe_commits",
    "order_novel_commits",
    "parse_cherry_output",
]
