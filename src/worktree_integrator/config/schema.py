"""
worktree-integrator — configuration schema and validation.

File: src/worktree_integrator/config/schema.py

Purpose
- Define configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown fields and embedded secrets.
- Keep schema version mismatches explicit through migration messages.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from worktree_integrator.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_GIT_EXECUTABLE,
    DEFAULT_REMOTE,
    DEFAULT_STATE_DIR,
    DEFAULT_TEMP_PREFIX,
    DEFAULT_TEMP_ROOT,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_TEMP_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|[^A-Za-z0-9]+")

# Key fragments that mark a value as a credential; those never belong in the file.
_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "passphrase", "apikey", "credential", "credentials"}
)
_SECRET_PAIRS: Final[frozenset[tuple[str, str]]] = frozenset(
    {("api", "key"), ("private", "key"), ("access", "key")}
)

# Config paths that are normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("integration", "temp_root"),
    ("state", "state_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class GitConfig(TypedDict):
    executable: str
    default_remote: str


class IntegrationConfig(TypedDict):
    temp_root: str
    temp_prefix: str
    fast_forward_upstream: bool
    sync_clean_worktrees: bool


class StateConfig(TypedDict):
    state_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_file: bool
    redact_secrets: bool


class IntegratorConfig(TypedDict):
    meta: MetaConfig
    git: GitConfig
    integration: IntegrationConfig
    state: StateConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[IntegratorConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "git": {
        "executable": DEFAULT_GIT_EXECUTABLE,
        "default_remote": DEFAULT_REMOTE,
    },
    "integration": {
        "temp_root": DEFAULT_TEMP_ROOT,
        "temp_prefix": DEFAULT_TEMP_PREFIX,
        "fast_forward_upstream": True,
        "sync_clean_worktrees": True,
    },
    "state": {
        "state_dir": DEFAULT_STATE_DIR,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs",
        "log_to_file": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One failed check, addressed by dotted config path."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config when valid, otherwise the issues that were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config``; ``issues`` keeps the structured details."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


_Issues = list[ConfigValidationIssue]
_FieldParser = Callable[[object, str, _Issues], Any]


def default_config() -> IntegratorConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Explain how to resolve a schema version mismatch."""

    current = ConfigSchemaVersion
    if found_version < current:
        return (
            f"schema version {found_version} is older than supported {current}; "
            "upgrade integrator.toml to the current schema"
        )
    if found_version > current:
        return (
            f"schema version {found_version} is newer than supported {current}; "
            "upgrade worktree-integrator"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is mutated."""

    merged: dict[str, Any] = {}
    for key, value in base.items():
        if isinstance(value, Mapping):
            merged[key] = merge_config(value, {})
        else:
            merged[key] = copy.deepcopy(value)
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with dotted paths.

    Every section and every field is required; unknown keys are rejected, and
    keys that look like credentials get a dedicated message.
    """

    issues: _Issues = []
    if not isinstance(config, Mapping):
        _fail(issues, "<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=tuple(issues))

    _check_keys(config, _SCHEMA, "", issues)
    normalized: dict[str, Any] = {}
    for section_name, fields in sorted(_SCHEMA.items()):
        section = config.get(section_name)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            _fail(issues, section_name, f"expected object, got {type(section).__name__}")
            continue
        _check_keys(section, fields, section_name, issues)
        parsed_section: dict[str, Any] = {}
        for field_name, parse in sorted(fields.items()):
            if field_name in section:
                parsed = parse(section[field_name], f"{section_name}.{field_name}", issues)
                if parsed is not None:
                    parsed_section[field_name] = parsed
        normalized[section_name] = parsed_section

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _fail(issues: _Issues, path: str, message: str) -> None:
    issues.append(ConfigValidationIssue(path=path, message=message))


def _check_keys(
    payload: Mapping[object, object],
    expected: Mapping[str, object],
    path: str,
    issues: _Issues,
) -> None:
    prefix = f"{path}." if path else ""
    for key in sorted(payload, key=str):
        if not isinstance(key, str):
            _fail(issues, path or "<root>", f"object key must be string, got {type(key).__name__}")
        elif key not in expected:
            message = (
                "embedded secret values are forbidden in integrator.toml"
                if _looks_like_secret(key)
                else "unknown field"
            )
            _fail(issues, prefix + key, message)
    for key in sorted(expected):
        if key not in payload:
            _fail(issues, prefix + key, "missing required field")


def _looks_like_secret(key: str) -> bool:
    words = [word.lower() for word in _WORD_BOUNDARY.split(key.strip()) if word]
    if any(word in _SECRET_WORDS for word in words):
        return True
    return any(pair in _SECRET_PAIRS for pair in zip(words, words[1:]))


def _text(value: object, path: str, issues: _Issues) -> str | None:
    if not isinstance(value, str):
        _fail(issues, path, f"expected string, got {type(value).__name__}")
        return None
    if not value.strip():
        _fail(issues, path, "must not be empty")
        return None
    return value.strip()


def _path_text(value: object, path: str, issues: _Issues) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is not None and "\x00" in parsed:
        _fail(issues, path, "must not contain NUL bytes")
        return None
    return parsed


def _flag(value: object, path: str, issues: _Issues) -> bool | None:
    if not isinstance(value, bool):
        _fail(issues, path, f"expected boolean, got {type(value).__name__}")
        return None
    return value


def _schema_version(value: object, path: str, issues: _Issues) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(issues, path, f"expected integer, got {type(value).__name__}")
        return None
    if value < 1:
        _fail(issues, path, "must be >= 1")
        return None
    if value != ConfigSchemaVersion:
        _fail(issues, path, migration_guidance(value))
        return None
    return value


def _remote_name(value: object, path: str, issues: _Issues) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is not None and ("/" in parsed or any(char.isspace() for char in parsed)):
        _fail(issues, path, "must be a bare remote name (example: origin)")
        return None
    return parsed


def _temp_prefix(value: object, path: str, issues: _Issues) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is not None and not _TEMP_PREFIX_PATTERN.fullmatch(parsed):
        _fail(issues, path, "may only contain letters, digits, '.', '_' and '-'")
        return None
    return parsed


def _log_level(value: object, path: str, issues: _Issues) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is None:
        return None
    if parsed.upper() not in LOG_LEVELS:
        expected = ", ".join(sorted(LOG_LEVELS))
        _fail(issues, path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed.upper()


_SCHEMA: Final[dict[str, dict[str, _FieldParser]]] = {
    "meta": {"schema_version": _schema_version},
    "git": {"executable": _text, "default_remote": _remote_name},
    "integration": {
        "temp_root": _path_text,
        "temp_prefix": _temp_prefix,
        "fast_forward_upstream": _flag,
        "sync_clean_worktrees": _flag,
    },
    "state": {"state_dir": _path_text},
    "observability": {
        "log_level": _log_level,
        "log_dir": _path_text,
        "log_to_file": _flag,
        "redact_secrets": _flag,
    },
}


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "IntegratorConfig",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
