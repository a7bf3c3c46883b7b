"""File-backed store for paused integrations.

Each paused integration lives in ``<state_dir>/<repo scope>/<key>.json``::

    {"schema_version": 1, "saved_at": "...Z", "state": {...}}

Keys name a branch pair and are unique only within one repository scope.

A file that cannot be read back into an ``IntegrationInProgress`` is removed
on load; the caller then simply sees no paused integration.
"""

from __future__ import annotations

import hashlib
import json
import posixpath
import re
from datetime import UTC, datetime
from pathlib import Path

import structlog

from worktree_integrator.constants import PAUSED_STATE_SCHEMA_VERSION
from worktree_integrator.integration.models import IntegrationInProgress
from worktree_integrator.integration.worktrees import path_key
from worktree_integrator.utils.fs import atomic_write

_LOGGER = structlog.get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_SUFFIX = ".json"


def state_key_for(source_branch: str, target_branch: str) -> str:
    """Derive a filesystem-safe store key from a branch pair."""

    raw = f"{source_branch.strip()}--{target_branch.strip()}"
    key = _UNSAFE_KEY_CHARS.sub("_", raw).strip("._")
    if not key:
        raise ValueError("branch names do not yield a usable state key")
    return key


def repository_scope(repo_root: str) -> str:
    """Directory name holding the paused integrations of one repository."""

    normalized = path_key(repo_root)
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]
    name = _UNSAFE_KEY_CHARS.sub("_", posixpath.basename(normalized)).strip("._")
    return f"{name or 'repo'}-{digest}"


class PausedIntegrationStore:
    """Persist paused integrations across process restarts, one file per key."""

    def __init__(self, state_dir: Path | str) -> None:
        self.state_dir = Path(state_dir).expanduser()

    @classmethod
    def for_repository(cls, state_dir: Path | str, repo_root: str) -> PausedIntegrationStore:
        """Store confined to ``repo_root``; other repositories' keys are invisible."""

        return cls(Path(state_dir).expanduser() / repository_scope(repo_root))

    def path_for(self, key: str) -> Path:
        return self.state_dir / f"{_validate_key(key)}{_SUFFIX}"

    def save(self, key: str, state: IntegrationInProgress) -> Path:
        path = self.path_for(key)
        envelope = {
            "schema_version": PAUSED_STATE_SCHEMA_VERSION,
            "saved_at": datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "state": state.to_dict(),
        }
        atomic_write(path, json.dumps(envelope, indent=2, sort_keys=True) + "\n")
        _LOGGER.info("integration_paused_state_saved", key=key, path=str(path))
        return path

    def load(self, key: str) -> IntegrationInProgress | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            envelope = json.loads(path.read_text(encoding="utf-8"))
            return _state_from_envelope(envelope)
        except (OSError, ValueError) as exc:
            _LOGGER.warning(
                "integration_paused_state_invalid",
                key=key,
                path=str(path),
                error=str(exc),
            )
            self.discard(key)
            return None

    def discard(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self.state_dir.is_dir():
            return []
        return sorted(
            entry.name[: -len(_SUFFIX)]
            for entry in self.state_dir.iterdir()
            if entry.is_file()
            and entry.name.endswith(_SUFFIX)
            and _KEY_PATTERN.match(entry.name[: -len(_SUFFIX)])
        )


def _state_from_envelope(envelope: object) -> IntegrationInProgress:
    if not isinstance(envelope, dict):
        raise ValueError("paused state file must contain a JSON object")
    version = envelope.get("schema_version")
    if version != PAUSED_STATE_SCHEMA_VERSION:
        raise ValueError(f"unsupported paused state schema_version {version!r}")
    payload = envelope.get("state")
    if not isinstance(payload, dict):
        raise ValueError("paused state file has no state object")
    return IntegrationInProgress.from_dict(payload)


def _validate_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key) or key in {".", ".."}:
        raise ValueError(f"invalid paused state key: {key!r}")
    return key


__all__ = ["PausedIntegrationStore", "repository_scope", "state_key_for"]
