"""Integration executor and conflict-recovery state machine.

An integration replays planned commits onto the target branch inside a
disposable worktree that has the target branch checked out, so every clean
cherry-pick advances the target ref directly. A conflicting cherry-pick pauses
the replay and hands back an ``IntegrationInProgress`` snapshot; the caller
resumes it with ``continue_integrate`` or discards it with ``abort_integrate``.

State transitions::

    Replaying --conflict--> Conflicted --continue--> Replaying
    Replaying --drained---> Retired
    Conflicted --abort----> Aborted

Fatal errors never leave the disposable worktree behind.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import structlog

from worktree_integrator.constants import HEAD_REF, NOOP_REASON_NO_COMMITS
from worktree_integrator.integration.commands import shell_quote
from worktree_integrator.integration.errors import GitCommandError, ReplayError, SetupError
from worktree_integrator.integration.git import GitClient, best_effort
from worktree_integrator.integration.models import (
    CommitSummary,
    ConflictDetails,
    IntegrationConflict,
    IntegrationInProgress,
    IntegrationNoOp,
    IntegrationPlan,
    IntegrationResult,
    IntegrationSuccess,
)
from worktree_integrator.integration.planner import (
    DEFAULT_PREVIEW_LIMIT,
    compute_integrate_plan,
    describe_commits,
)
from worktree_integrator.integration.settings import IntegratorSettings
from worktree_integrator.integration.worktrees import (
    compute_clean_worktrees_to_sync,
    create_temp_worktree,
    find_stray_temp_worktrees,
    list_worktrees,
    path_key,
    remove_temp_worktree,
    sync_clean_worktrees,
)
from worktree_integrator.observability.logging import correlation_scope

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from worktree_integrator.integration.commands import CommandExecutor
    from worktree_integrator.integration.state_store import PausedIntegrationStore

_LOGGER = structlog.get_logger(__name__)

_CHERRY_PICK_HEAD = "CHERRY_PICK_HEAD"
_NON_INTERACTIVE_EDITOR = {"GIT_EDITOR": "true"}


class WorktreeIntegrator:
    """Plan, replay, pause, resume and abort commit integrations."""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        *,
        settings: IntegratorSettings | None = None,
        logger: Any | None = None,
    ) -> None:
        self.settings = settings if settings is not None else IntegratorSettings()
        self._logger = logger if logger is not None else _LOGGER
        self.git = GitClient(
            executor,
            executable=self.settings.git_executable,
            logger=self._logger,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def compute_plan(
        self, repo_root: str, source_branch: str, target_branch: str
    ) -> IntegrationPlan:
        return compute_integrate_plan(
            self.git,
            repo_root,
            source_branch,
            target_branch,
            default_remote=self.settings.default_remote,
        )

    def describe_plan(
        self,
        plan: IntegrationPlan,
        *,
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> list[CommitSummary]:
        return describe_commits(self.git, plan.repo_root, plan.commits, limit=limit)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def integrate(self, plan: IntegrationPlan) -> IntegrationResult:
        """Replay ``plan.commits`` onto ``plan.target_branch``.

        Returns ``IntegrationNoOp`` for an empty plan, ``IntegrationSuccess``
        when every commit replayed, or ``IntegrationConflict`` when a
        cherry-pick left unmerged files. Raises ``SetupError`` when the
        disposable worktree cannot be prepared and ``ReplayError`` when a
        cherry-pick fails for any other reason.
        """

        if plan.is_empty:
            self._logger.info(
                "integration_noop",
                repo_root=plan.repo_root,
                source_branch=plan.source_branch,
                target_branch=plan.target_branch,
            )
            return IntegrationNoOp(reason=NOOP_REASON_NO_COMMITS)
        if plan.target_branch == HEAD_REF:
            raise SetupError("HEAD is not a branch; choose a target branch to integrate into")

        with correlation_scope(
            integration_id=uuid.uuid4().hex[:12],
            repo_root=plan.repo_root,
            target_branch=plan.target_branch,
        ):
            temp_path = create_temp_worktree(
                self.git,
                plan.repo_root,
                plan.target_branch,
                temp_root=self.settings.temp_root,
                prefix=self.settings.temp_prefix,
            )
            self._logger.info(
                "integration_started",
                source_branch=plan.source_branch,
                temp_worktree_path=temp_path,
                commit_count=len(plan.commits),
            )

            try:
                self._prepare_temp_worktree(temp_path)
                clean_targets = self._snapshot_clean_worktrees(
                    plan.repo_root, plan.target_branch, temp_path
                )
                paused = self._replay(
                    repo_root=plan.repo_root,
                    temp_path=temp_path,
                    source_branch=plan.source_branch,
                    target_branch=plan.target_branch,
                    clean_targets=clean_targets,
                    commits=plan.commits,
                )
            except Exception:
                self._discard_temp_worktree(plan.repo_root, temp_path)
                raise

            if paused is not None:
                return paused
            return self._retire(plan.repo_root, temp_path, clean_targets, len(plan.commits))

    def continue_integrate(self, state: IntegrationInProgress) -> IntegrationResult:
        """Finish the conflicted cherry-pick and resume the replay."""

        temp_path = state.temp_worktree_path
        with correlation_scope(
            repo_root=state.repo_root,
            target_branch=state.target_branch,
        ):
            resumed = self.git.run(
                ["cherry-pick", "--continue"],
                temp_path,
                check=False,
                env=_NON_INTERACTIVE_EDITOR,
            )
            if not resumed.ok:
                if self.git.unmerged_files(temp_path):
                    self._logger.info(
                        "integration_still_conflicted",
                        commit=state.current_commit,
                        temp_worktree_path=temp_path,
                    )
                    return IntegrationConflict(
                        state=state,
                        details=self.get_conflict_details(temp_path),
                    )
                self._discard_temp_worktree(state.repo_root, temp_path)
                detail = resumed.stderr.strip() or resumed.stdout.strip() or "no output"
                raise ReplayError(
                    f"cherry-pick --continue failed for {state.current_commit}: {detail}",
                    commit=state.current_commit,
                )

            remaining = list(state.remaining_commits)
            if remaining and remaining[0] == state.current_commit:
                remaining.pop(0)
            self._logger.info(
                "integration_commit_replayed",
                commit=state.current_commit,
                remaining=len(remaining),
            )

            try:
                paused = self._replay(
                    repo_root=state.repo_root,
                    temp_path=temp_path,
                    source_branch=state.source_branch,
                    target_branch=state.target_branch,
                    clean_targets=state.clean_target_worktrees,
                    commits=remaining,
                )
            except Exception:
                self._discard_temp_worktree(state.repo_root, temp_path)
                raise

            if paused is not None:
                return paused
            return self._retire(
                state.repo_root,
                temp_path,
                state.clean_target_worktrees,
                len(state.remaining_commits),
            )

    def abort_integrate(self, state: IntegrationInProgress) -> None:
        """Drop the in-flight cherry-pick and the disposable worktree.

        Commits replayed before the pause stay on the target branch. Safe to
        call more than once.
        """

        with correlation_scope(
            repo_root=state.repo_root,
            target_branch=state.target_branch,
        ):
            self._discard_temp_worktree(state.repo_root, state.temp_worktree_path)
            self._logger.info(
                "integration_aborted",
                commit=state.current_commit,
                remaining=len(state.remaining_commits),
            )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_conflict_details(self, temp_worktree_path: str) -> ConflictDetails:
        """Snapshot the paused worktree. Individual failures become text, never errors."""

        def output(args: Sequence[str]) -> str:
            result = self.git.run(args, temp_worktree_path, check=False)
            return result.stdout if result.ok else result.stderr

        return ConflictDetails(
            status_porcelain=output(["status", "--porcelain"]),
            unmerged_files=tuple(self.git.unmerged_files(temp_worktree_path)),
            diff=output(["diff"]),
            current_patch_meta=output(["show", "--no-patch", "--pretty=fuller", _CHERRY_PICK_HEAD]),
            current_patch=output(["show", _CHERRY_PICK_HEAD]),
        )

    def is_cherry_pick_in_progress(self, temp_worktree_path: str) -> bool:
        result = self.git.run(
            ["rev-parse", "--verify", "--quiet", _CHERRY_PICK_HEAD],
            temp_worktree_path,
            check=False,
        )
        return result.ok

    def restore_paused(
        self,
        store: PausedIntegrationStore,
        key: str,
        repo_root: str,
    ) -> IntegrationConflict | None:
        """Reload a stored pause, discarding it when it no longer applies.

        A state recorded for another repository is left in the store untouched.
        """

        state = store.load(key)
        if state is None:
            return None
        if path_key(state.repo_root) != path_key(repo_root):
            self._logger.info(
                "integration_paused_state_skipped",
                key=key,
                reason="repo_mismatch",
                stored_repo_root=state.repo_root,
            )
            return None
        if not self.is_cherry_pick_in_progress(state.temp_worktree_path):
            self._logger.info(
                "integration_paused_state_discarded",
                key=key,
                reason="no_cherry_pick_in_progress",
            )
            store.discard(key)
            return None
        return IntegrationConflict(
            state=state,
            details=self.get_conflict_details(state.temp_worktree_path),
        )

    def prune_stray_worktrees(self, repo_root: str, keep_paths: Iterable[str] = ()) -> list[str]:
        """Remove disposable worktrees nobody is resolving anymore."""

        kept = list(keep_paths)
        roots = {path_key(self.settings.temp_root)}
        physical = self.git.shell(
            f"cd {shell_quote(self.settings.temp_root)} && pwd -P",
            repo_root,
            check=False,
        )
        if physical.ok and physical.stdout.strip():
            roots.add(path_key(physical.stdout.strip()))

        entries = list_worktrees(self.git, repo_root)
        removed: list[str] = []
        seen: set[str] = set()
        for root in sorted(roots):
            for entry in find_stray_temp_worktrees(
                entries,
                temp_root=root,
                prefix=self.settings.temp_prefix,
                keep_paths=kept,
            ):
                key = path_key(entry.path)
                if key in seen:
                    continue
                seen.add(key)
                remove_temp_worktree(self.git, repo_root, entry.path)
                removed.append(entry.path)

        self._logger.info("integration_stray_worktrees_pruned", count=len(removed))
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _prepare_temp_worktree(self, temp_path: str) -> None:
        if self.settings.fast_forward_upstream:
            self._fast_forward_upstream(temp_path)
        try:
            clean = self.git.is_clean(temp_path)
        except GitCommandError as exc:
            raise SetupError(f"unable to read status of temporary worktree: {exc}") from exc
        if not clean:
            raise SetupError("temporary worktree has local changes; refusing to replay commits")

    def _fast_forward_upstream(self, temp_path: str) -> None:
        upstream = self.git.upstream_ref(temp_path)
        if upstream is None:
            return
        self.git.run_best_effort(["fetch"], temp_path, action="fetch_upstream")
        try:
            self.git.run(["merge", "--ff-only", upstream], temp_path)
        except GitCommandError as exc:
            raise SetupError(
                f"target branch cannot be fast-forwarded to {upstream}: {exc}"
            ) from exc
        self._logger.info("integration_upstream_fast_forwarded", upstream=upstream)

    def _snapshot_clean_worktrees(
        self,
        repo_root: str,
        target_branch: str,
        temp_path: str,
    ) -> tuple[str, ...]:
        snapshot = best_effort(
            "snapshot_clean_worktrees",
            lambda: compute_clean_worktrees_to_sync(
                self.git, repo_root, target_branch, exclude_paths=[temp_path]
            ),
            logger=self._logger,
            default=[],
            repo_root=repo_root,
        )
        return tuple(snapshot or ())

    def _replay(
        self,
        *,
        repo_root: str,
        temp_path: str,
        source_branch: str,
        target_branch: str,
        clean_targets: tuple[str, ...],
        commits: Sequence[str],
    ) -> IntegrationConflict | None:
        remaining = list(commits)
        while remaining:
            commit = remaining[0]
            picked = self.git.run(["cherry-pick", commit], temp_path, check=False)
            if picked.ok:
                remaining.pop(0)
                self._logger.info(
                    "integration_commit_replayed",
                    commit=commit,
                    remaining=len(remaining),
                )
                continue

            if self.git.unmerged_files(temp_path):
                state = IntegrationInProgress(
                    repo_root=repo_root,
                    temp_worktree_path=temp_path,
                    source_branch=source_branch,
                    target_branch=target_branch,
                    clean_target_worktrees=clean_targets,
                    remaining_commits=tuple(remaining),
                    current_commit=commit,
                )
                details = self.get_conflict_details(temp_path)
                self._logger.warning(
                    "integration_paused_on_conflict",
                    commit=commit,
                    remaining=len(remaining),
                    unmerged_files=list(details.unmerged_files),
                    temp_worktree_path=temp_path,
                )
                return IntegrationConflict(state=state, details=details)

            detail = picked.stderr.strip() or picked.stdout.strip() or "no output"
            raise ReplayError(f"cherry-pick of {commit} failed: {detail}", commit=commit)
        return None

    def _retire(
        self,
        repo_root: str,
        temp_path: str,
        clean_targets: Sequence[str],
        moved_count: int,
    ) -> IntegrationSuccess:
        remove_temp_worktree(self.git, repo_root, temp_path)
        if self.settings.sync_clean_worktrees:
            sync_clean_worktrees(self.git, clean_targets)
        self._logger.info(
            "integration_completed",
            moved_count=moved_count,
            synced_worktrees=len(clean_targets) if self.settings.sync_clean_worktrees else 0,
        )
        return IntegrationSuccess(moved_count=moved_count)

    def _discard_temp_worktree(self, repo_root: str, temp_path: str) -> None:
        if self.is_cherry_pick_in_progress(temp_path):
            self.git.run_best_effort(
                ["cherry-pick", "--abort"], temp_path, action="abort_cherry_pick"
            )
        remove_temp_worktree(self.git, repo_root, temp_path)


__all__ = ["WorktreeIntegrator"]
