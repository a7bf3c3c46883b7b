"""Command-line interface router for worktree-integrator."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from worktree_integrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from worktree_integrator.integration import (
    GitCommandError,
    IntegrationConflict,
    IntegrationError,
    IntegrationInProgress,
    IntegrationNoOp,
    IntegrationResult,
    IntegrationSuccess,
    IntegratorSettings,
    PausedIntegrationStore,
    WorktreeIntegrator,
    state_key_for,
)
from worktree_integrator.integration.planner import DEFAULT_PREVIEW_LIMIT
from worktree_integrator.integration.worktrees import path_key
from worktree_integrator.observability import flush_logging, setup_logging, shutdown_logging
from worktree_integrator.ui.render import CLIRenderer, create_renderer

PROG: Final[str] = "worktree-integrator"
EXIT_SUCCESS: Final[int] = 0
EXIT_CONFLICT: Final[int] = 1
EXIT_USAGE: Final[int] = 2
_MAX_DETAIL_LINES: Final[int] = 200


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_USAGE

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class _Context:
    repo_root: str
    integrator: WorktreeIntegrator
    store: PausedIntegrationStore
    renderer: CLIRenderer
    json_output: bool


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog=PROG,
        description=(
            "Move commits from a worktree branch onto a target branch with cherry-pick.\n\n"
            "Common workflows:\n"
            f"  {PROG} plan --source feature --target main\n"
            f"  {PROG} integrate --source feature --target main\n"
            f"  {PROG} continue            Resume after resolving a conflict\n"
            f"  {PROG} abort               Drop a paused integration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=".",
        help="Any directory inside the repository (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to integrator TOML config (default: ./integrator.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and emit debug logs on stderr.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit machine-readable JSON on stdout.",
    )

    branches = argparse.ArgumentParser(add_help=False)
    branches.add_argument("--source", required=True, help="Branch holding the commits to move.")
    branches.add_argument("--target", required=True, help="Branch receiving the commits.")

    session = argparse.ArgumentParser(add_help=False)
    session.add_argument(
        "--session",
        default=None,
        help="Key of the paused integration (default: derived from the branches, or the only one).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common, branches],
        help="Show the commits that would be moved",
    )
    plan_parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_PREVIEW_LIMIT,
        help=f"Maximum commits to preview (default: {DEFAULT_PREVIEW_LIMIT}).",
    )
    plan_parser.set_defaults(handler=_cmd_plan)

    integrate_parser = subparsers.add_parser(
        "integrate",
        parents=[common, branches, session],
        help="Replay the planned commits onto the target branch",
    )
    integrate_parser.set_defaults(handler=_cmd_integrate)

    continue_parser = subparsers.add_parser(
        "continue",
        parents=[common, session],
        help="Resume a paused integration after staging the conflict resolution",
    )
    continue_parser.set_defaults(handler=_cmd_continue)

    abort_parser = subparsers.add_parser(
        "abort",
        parents=[common, session],
        help="Abandon a paused integration and remove its temporary worktree",
    )
    abort_parser.set_defaults(handler=_cmd_abort)

    status_parser = subparsers.add_parser(
        "status",
        parents=[common, session],
        help="Show paused integrations for this repository",
    )
    status_parser.set_defaults(handler=_cmd_status)

    prune_parser = subparsers.add_parser(
        "prune",
        parents=[common],
        help="Remove leftover temporary worktrees not owned by a paused integration",
    )
    prune_parser.set_defaults(handler=_cmd_prune)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration as JSON",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_plan(args: argparse.Namespace) -> int:
    ctx = _bootstrap(args)
    plan = ctx.integrator.compute_plan(ctx.repo_root, args.source, args.target)
    preview = ctx.integrator.describe_plan(plan, limit=max(int(args.limit), 0))

    if ctx.json_output:
        _emit_json(
            {
                "command": "plan",
                "repo_root": plan.repo_root,
                "source_branch": plan.source_branch,
                "target_branch": plan.target_branch,
                "commits": list(plan.commits),
                "preview": [
                    {"sha": item.sha, "short_sha": item.short_sha, "subject": item.subject}
                    for item in preview
                ],
            }
        )
        return EXIT_SUCCESS

    renderer = ctx.renderer
    renderer.kv("Source", plan.source_branch)
    renderer.kv("Target", plan.target_branch)
    renderer.kv("Commits to move", len(plan.commits))
    if plan.is_empty:
        renderer.text("Nothing to integrate.")
        return EXIT_SUCCESS

    renderer.table(
        ["COMMIT", "SUBJECT"],
        [[item.short_sha, _truncate(item.subject, 72)] for item in preview],
        title="Newest first:",
    )
    hidden = len(plan.commits) - len(preview)
    if hidden > 0:
        renderer.text(f"  ... and {hidden} older commit(s)")
    renderer.next_steps(
        [f"{PROG} integrate --source {plan.source_branch} --target {plan.target_branch}"]
    )
    return EXIT_SUCCESS


def _cmd_integrate(args: argparse.Namespace) -> int:
    ctx = _bootstrap(args)
    key = args.session or state_key_for(args.source, args.target)

    existing = ctx.integrator.restore_paused(ctx.store, key, ctx.repo_root)
    if existing is not None:
        raise CLIError(
            f"integration {key!r} is paused on {existing.state.current_commit[:12]}; "
            f"run '{PROG} continue --session {key}' or '{PROG} abort --session {key}'",
            exit_code=EXIT_USAGE,
        )

    plan = ctx.integrator.compute_plan(ctx.repo_root, args.source, args.target)
    result = ctx.integrator.integrate(plan)
    return _finish(ctx, key, result, command="integrate")


def _cmd_continue(args: argparse.Namespace) -> int:
    ctx = _bootstrap(args)
    key = _resolve_session_key(ctx, args.session)
    paused = ctx.integrator.restore_paused(ctx.store, key, ctx.repo_root)
    if paused is None:
        raise CLIError(f"no paused integration {key!r} to continue", exit_code=EXIT_USAGE)

    try:
        result = ctx.integrator.continue_integrate(paused.state)
    except IntegrationError:
        ctx.store.discard(key)
        raise
    return _finish(ctx, key, result, command="continue")


def _cmd_abort(args: argparse.Namespace) -> int:
    ctx = _bootstrap(args)
    key = _resolve_session_key(ctx, args.session)
    state = ctx.store.load(key)
    if state is not None and path_key(state.repo_root) != path_key(ctx.repo_root):
        state = None
    if state is None:
        if ctx.json_output:
            _emit_json({"command": "abort", "session": key, "aborted": False})
        else:
            ctx.renderer.text(f"No paused integration {key!r}; nothing to abort.")
        return EXIT_SUCCESS

    ctx.integrator.abort_integrate(state)
    ctx.store.discard(key)

    if ctx.json_output:
        _emit_json({"command": "abort", "session": key, "aborted": True})
        return EXIT_SUCCESS
    ctx.renderer.success(f"Aborted integration {key!r}.")
    ctx.renderer.kv("Target", state.target_branch)
    ctx.renderer.kv("Commits not moved", len(state.remaining_commits))
    return EXIT_SUCCESS


def _cmd_status(args: argparse.Namespace) -> int:
    ctx = _bootstrap(args)
    keys = [args.session] if args.session else sorted(_own_states(ctx))

    paused: list[tuple[str, IntegrationConflict]] = []
    for key in keys:
        restored = ctx.integrator.restore_paused(ctx.store, key, ctx.repo_root)
        if restored is not None:
            paused.append((key, restored))

    if ctx.json_output:
        _emit_json(
            {
                "command": "status",
                "paused": [
                    {
                        "session": key,
                        "state": item.state.to_dict(),
                        "details": item.details.to_dict(),
                    }
                    for key, item in paused
                ],
            }
        )
        return EXIT_SUCCESS

    if not paused:
        ctx.renderer.text("No paused integrations.")
        return EXIT_SUCCESS
    for key, item in paused:
        _render_conflict(ctx.renderer, key, item, verbose=ctx.renderer.verbose)
    return EXIT_SUCCESS


def _cmd_prune(args: argparse.Namespace) -> int:
    ctx = _bootstrap(args)
    keep_paths = [state.temp_worktree_path for state in _own_states(ctx).values()]

    removed = ctx.integrator.prune_stray_worktrees(ctx.repo_root, keep_paths)

    if ctx.json_output:
        _emit_json({"command": "prune", "removed": removed, "kept": keep_paths})
        return EXIT_SUCCESS
    if not removed:
        ctx.renderer.text("No stray temporary worktrees.")
        return EXIT_SUCCESS
    ctx.renderer.section(f"Removed {len(removed)} temporary worktree(s):")
    ctx.renderer.items(removed)
    return EXIT_SUCCESS


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)

    if bool(args.json):
        _emit_json({"command": "config", "config": config})
        return EXIT_SUCCESS
    renderer = create_renderer(no_color=bool(args.no_color), verbose=bool(args.verbose))
    renderer.text(dump_effective_config(config))
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Result handling and rendering
# ---------------------------------------------------------------------------


def _finish(ctx: _Context, key: str, result: IntegrationResult, *, command: str) -> int:
    if isinstance(result, IntegrationConflict):
        ctx.store.save(key, result.state)
        if ctx.json_output:
            _emit_json(
                {
                    "command": command,
                    "result": result.kind,
                    "session": key,
                    "state": result.state.to_dict(),
                    "details": result.details.to_dict(),
                }
            )
        else:
            _render_conflict(ctx.renderer, key, result, verbose=True)
        return EXIT_CONFLICT

    ctx.store.discard(key)
    if ctx.json_output:
        payload: dict[str, object] = {"command": command, "result": result.kind}
        if isinstance(result, IntegrationSuccess):
            payload["moved_count"] = result.moved_count
        elif isinstance(result, IntegrationNoOp):
            payload["reason"] = result.reason
        _emit_json(payload)
        return EXIT_SUCCESS

    if isinstance(result, IntegrationSuccess):
        ctx.renderer.success(f"Moved {result.moved_count} commit(s).")
    elif isinstance(result, IntegrationNoOp):
        ctx.renderer.text(result.reason)
    return EXIT_SUCCESS


def _render_conflict(
    renderer: CLIRenderer,
    key: str,
    conflict: IntegrationConflict,
    *,
    verbose: bool,
) -> None:
    state = conflict.state
    details = conflict.details
    renderer.error(f"Integration {key!r} is paused on a conflict.")
    renderer.kv("Source", state.source_branch)
    renderer.kv("Target", state.target_branch)
    renderer.kv("Conflicting commit", state.current_commit)
    renderer.kv("Commits remaining", len(state.remaining_commits))
    renderer.kv("Resolve in", state.temp_worktree_path)

    if details.unmerged_files:
        renderer.section("Unmerged files:")
        renderer.items(list(details.unmerged_files))
    if verbose and details.current_patch_meta.strip():
        renderer.section("Commit being applied:")
        renderer.block(_clip(details.current_patch_meta))
    if verbose and details.diff.strip():
        renderer.section("Working tree diff:")
        renderer.block(_clip(details.diff))

    renderer.next_steps(
        [
            f"cd {state.temp_worktree_path} && git add <resolved files>",
            f"{PROG} continue --session {key}",
            f"{PROG} abort --session {key}",
        ]
    )


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    flush_logging()
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


# ---------------------------------------------------------------------------
# Helpers: config, repository and sessions
# ---------------------------------------------------------------------------


def _bootstrap(args: argparse.Namespace) -> _Context:
    config = _load_effective_config(args)
    verbose = bool(getattr(args, "verbose", False))
    observability = config.get("observability")
    setup_logging(
        observability if isinstance(observability, Mapping) else None,
        run_id=_new_run_id(),
        verbose=verbose,
    )

    settings = IntegratorSettings.from_config(config)
    integrator = WorktreeIntegrator(settings=settings)
    repo_root = _repo_root(args, integrator)
    return _Context(
        repo_root=repo_root,
        integrator=integrator,
        store=PausedIntegrationStore.for_repository(settings.state_dir, repo_root),
        renderer=create_renderer(no_color=bool(args.no_color), verbose=verbose),
        json_output=bool(getattr(args, "json", False)),
    )


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    try:
        return load_config(getattr(args, "config_path", None))
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc


def _repo_root(args: argparse.Namespace, integrator: WorktreeIntegrator) -> str:
    candidate = Path(str(args.repo_root)).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"repo root is not a directory: {candidate}", exit_code=EXIT_USAGE)
    try:
        toplevel = integrator.git.run(["rev-parse", "--show-toplevel"], candidate)
    except GitCommandError as exc:
        raise CLIError(f"not inside a git repository: {candidate}", exit_code=EXIT_USAGE) from exc
    return toplevel.stdout.strip() or candidate.as_posix()


def _own_states(ctx: _Context) -> dict[str, IntegrationInProgress]:
    """Stored paused states that belong to the current repository, by key."""

    owned: dict[str, IntegrationInProgress] = {}
    for key in ctx.store.keys():
        state = ctx.store.load(key)
        if state is not None and path_key(state.repo_root) == path_key(ctx.repo_root):
            owned[key] = state
    return owned


def _resolve_session_key(ctx: _Context, requested: str | None) -> str:
    if requested:
        return requested
    keys = sorted(_own_states(ctx))
    if not keys:
        raise CLIError("no paused integrations", exit_code=EXIT_USAGE)
    if len(keys) > 1:
        raise CLIError(
            "several paused integrations exist; pass --session (one of: " + ", ".join(keys) + ")",
            exit_code=EXIT_USAGE,
        )
    return keys[0]


def _new_run_id() -> str:
    return f"{datetime.now(UTC):%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:8]}"


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _clip(text: str) -> str:
    lines = text.splitlines()
    if len(lines) <= _MAX_DETAIL_LINES:
        return text
    hidden = len(lines) - _MAX_DETAIL_LINES
    return "\n".join([*lines[:_MAX_DETAIL_LINES], f"... ({hidden} more lines)"])


__all__ = ["CLIError", "build_parser", "run_cli"]
