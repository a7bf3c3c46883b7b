"""
Integration tests for cherry-pick integration against real git repositories.

Coverage:
- planning idempotence, no-op and patch-equivalence exclusion
- ordered replay and sync of clean target worktrees
- conflict pause, resolve + continue, and abort
- continue syncs the worktrees that were clean when the integration started
- dirty target worktrees are left untouched
- non-conflict cherry-pick failures never leave a temporary worktree behind
- paused state survives a new integrator instance; stray worktrees are pruned
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from worktree_integrator.integration import (
    IntegrationConflict,
    IntegrationNoOp,
    IntegrationPlan,
    IntegrationSuccess,
    IntegratorSettings,
    PausedIntegrationStore,
    PlanningError,
    ReplayError,
    WorktreeIntegrator,
    state_key_for,
)

from . import (
    commit_file,
    init_repo,
    isolate_git_environment,
    requires_git,
    run_git,
    subjects,
    worktree_paths,
)

pytestmark = requires_git


@dataclass(frozen=True)
class _Repo:
    root: Path
    feature: Path
    temp_root: Path
    state_dir: Path

    @property
    def root_text(self) -> str:
        return self.root.as_posix()


@pytest.fixture
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> _Repo:
    base = tmp_path.resolve()
    isolate_git_environment(monkeypatch, base / "home")
    root = base / "repo"
    init_repo(root)
    feature = base / "feature"
    run_git(root, "worktree", "add", "--quiet", "-b", "feature", str(feature))
    return _Repo(root=root, feature=feature, temp_root=base / "wti-tmp", state_dir=base / "state")


@pytest.fixture
def integrator(repo: _Repo) -> WorktreeIntegrator:
    return WorktreeIntegrator(
        settings=IntegratorSettings(
            temp_root=repo.temp_root.as_posix(),
            state_dir=repo.state_dir.as_posix(),
        )
    )


def _conflicting_history(repo: _Repo) -> tuple[str, str]:
    """main gets M on shared.txt; feature gets B (new file) then C (conflicting edit)."""

    commit_file(repo.root, "shared.txt", "main change\n", "M")
    b_sha = commit_file(repo.feature, "b.txt", "b\n", "B")
    c_sha = commit_file(repo.feature, "shared.txt", "feature change\n", "C")
    return b_sha, c_sha


def _temp_worktrees(repo: _Repo) -> list[str]:
    prefix = repo.temp_root.as_posix()
    return [path for path in worktree_paths(repo.root) if path.startswith(prefix)]


def test_plan_is_idempotent_and_ordered(repo: _Repo, integrator: WorktreeIntegrator) -> None:
    shas = [
        commit_file(repo.feature, f"f{index}.txt", f"{index}\n", f"add f{index}")
        for index in range(1, 4)
    ]

    first = integrator.compute_plan(repo.root_text, "feature", "main")
    second = integrator.compute_plan(repo.root_text, "feature", "main")

    assert first == second
    assert first.commits == tuple(shas)
    preview = integrator.describe_plan(first, limit=2)
    assert [item.subject for item in preview] == ["add f3", "add f2"]


def test_equal_branches_plan_nothing_and_integrate_is_noop(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    plan = integrator.compute_plan(repo.root_text, "feature", "main")

    assert plan.is_empty
    assert integrator.integrate(plan) == IntegrationNoOp(reason="No commits to move")
    assert not repo.temp_root.exists() or not any(repo.temp_root.iterdir())


def test_clean_integration_replays_in_order_and_syncs_clean_worktrees(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    for index in range(1, 4):
        commit_file(repo.feature, f"f{index}.txt", f"{index}\n", f"add f{index}")

    result = integrator.integrate(integrator.compute_plan(repo.root_text, "feature", "main"))

    assert result == IntegrationSuccess(moved_count=3)
    assert subjects(repo.root, "main") == ["A", "add f1", "add f2", "add f3"]
    assert (repo.root / "f3.txt").read_text(encoding="utf-8") == "3\n"
    assert run_git(repo.root, "status", "--porcelain").stdout == ""
    assert _temp_worktrees(repo) == []
    assert list(repo.temp_root.iterdir()) == []
    assert integrator.compute_plan(repo.root_text, "feature", "main").is_empty


def test_patch_equivalent_commits_are_excluded(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    first = commit_file(repo.feature, "one.txt", "1\n", "one")
    second = commit_file(repo.feature, "two.txt", "2\n", "two")
    run_git(repo.root, "cherry-pick", first)

    plan = integrator.compute_plan(repo.root_text, "feature", "main")

    assert plan.commits == (second,)


def test_conflict_resolve_and_continue(repo: _Repo, integrator: WorktreeIntegrator) -> None:
    b_sha, c_sha = _conflicting_history(repo)
    plan = integrator.compute_plan(repo.root_text, "feature", "main")
    assert plan.commits == (b_sha, c_sha)

    paused = integrator.integrate(plan)

    assert isinstance(paused, IntegrationConflict)
    assert paused.state.remaining_commits == (c_sha,)
    assert paused.state.current_commit == c_sha
    assert paused.state.clean_target_worktrees == (repo.root_text,)
    assert paused.details.unmerged_files == ("shared.txt",)
    assert "UU shared.txt" in paused.details.status_porcelain
    assert c_sha in paused.details.current_patch_meta
    assert subjects(repo.root, "main") == ["A", "M", "B"]

    temp = paused.state.temp_worktree_path
    assert integrator.is_cherry_pick_in_progress(temp)
    still = integrator.continue_integrate(paused.state)
    assert isinstance(still, IntegrationConflict)
    assert still.state == paused.state

    (Path(temp) / "shared.txt").write_text("resolved\n", encoding="utf-8")
    run_git(Path(temp), "add", "shared.txt")
    result = integrator.continue_integrate(paused.state)

    assert result == IntegrationSuccess(moved_count=1)
    assert subjects(repo.root, "main") == ["A", "M", "B", "C"]
    assert (repo.root / "shared.txt").read_text(encoding="utf-8") == "resolved\n"
    assert (repo.root / "b.txt").exists()
    assert _temp_worktrees(repo) == []


def test_continue_syncs_worktrees_recorded_when_integration_started(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    _conflicting_history(repo)
    mirror = repo.root.parent / "mirror"
    run_git(repo.root, "worktree", "add", "--quiet", "--force", str(mirror), "main")

    paused = integrator.integrate(integrator.compute_plan(repo.root_text, "feature", "main"))

    assert isinstance(paused, IntegrationConflict)
    assert paused.state.clean_target_worktrees == (repo.root_text, mirror.as_posix())
    (mirror / "README").write_text("edited while paused\n", encoding="utf-8")
    temp = Path(paused.state.temp_worktree_path)
    (temp / "shared.txt").write_text("resolved\n", encoding="utf-8")
    run_git(temp, "add", "shared.txt")

    result = integrator.continue_integrate(paused.state)

    assert result == IntegrationSuccess(moved_count=1)
    assert (mirror / "README").read_text(encoding="utf-8") == "readme\n"
    assert (mirror / "shared.txt").read_text(encoding="utf-8") == "resolved\n"
    assert run_git(mirror, "status", "--porcelain").stdout.strip() == ""


def test_abort_keeps_earlier_commits_and_is_idempotent(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    _conflicting_history(repo)
    paused = integrator.integrate(integrator.compute_plan(repo.root_text, "feature", "main"))
    assert isinstance(paused, IntegrationConflict)

    integrator.abort_integrate(paused.state)
    integrator.abort_integrate(paused.state)

    assert _temp_worktrees(repo) == []
    assert subjects(repo.root, "main") == ["A", "M", "B"]
    assert not Path(paused.state.temp_worktree_path).exists()


def test_dirty_target_worktree_is_not_synced(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    mirror = repo.root.parent / "mirror"
    run_git(repo.root, "worktree", "add", "--quiet", "--force", str(mirror), "main")
    (repo.root / "README").write_text("local edit\n", encoding="utf-8")
    commit_file(repo.feature, "f1.txt", "1\n", "add f1")

    result = integrator.integrate(integrator.compute_plan(repo.root_text, "feature", "main"))

    assert result == IntegrationSuccess(moved_count=1)
    assert (repo.root / "README").read_text(encoding="utf-8") == "local edit\n"
    assert not (repo.root / "f1.txt").exists()
    assert (mirror / "f1.txt").read_text(encoding="utf-8") == "1\n"


def test_non_conflict_cherry_pick_failure_cleans_up(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    already_on_main = commit_file(repo.root, "main-only.txt", "m\n", "main only")
    plan = IntegrationPlan(
        repo_root=repo.root_text,
        source_branch="feature",
        target_branch="main",
        commits=(already_on_main,),
    )

    with pytest.raises(ReplayError) as excinfo:
        integrator.integrate(plan)

    assert excinfo.value.commit == already_on_main
    assert _temp_worktrees(repo) == []
    assert subjects(repo.root, "main") == ["A", "main only"]


def test_unknown_target_raises_planning_error(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    with pytest.raises(PlanningError):
        integrator.compute_plan(repo.root_text, "feature", "does-not-exist")


def test_paused_state_survives_a_new_integrator(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    _conflicting_history(repo)
    paused = integrator.integrate(integrator.compute_plan(repo.root_text, "feature", "main"))
    assert isinstance(paused, IntegrationConflict)
    store = PausedIntegrationStore(repo.state_dir)
    key = state_key_for("feature", "main")
    store.save(key, paused.state)

    fresh = WorktreeIntegrator(settings=integrator.settings)
    restored = fresh.restore_paused(store, key, repo.root_text)

    assert isinstance(restored, IntegrationConflict)
    assert restored.state == paused.state
    assert restored.details.unmerged_files == ("shared.txt",)

    fresh.abort_integrate(restored.state)
    assert fresh.restore_paused(store, key, repo.root_text) is None
    assert store.keys() == []


def test_prune_removes_unowned_temporary_worktrees(
    repo: _Repo, integrator: WorktreeIntegrator
) -> None:
    _conflicting_history(repo)
    paused = integrator.integrate(integrator.compute_plan(repo.root_text, "feature", "main"))
    assert isinstance(paused, IntegrationConflict)
    temp = paused.state.temp_worktree_path

    assert integrator.prune_stray_worktrees(repo.root_text, keep_paths=[temp]) == []
    assert _temp_worktrees(repo) == [temp]

    assert integrator.prune_stray_worktrees(repo.root_text) == [temp]
    assert _temp_worktrees(repo) == []
    assert repo.feature.as_posix() in worktree_paths(repo.root)
