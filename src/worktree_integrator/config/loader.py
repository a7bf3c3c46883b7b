"""
worktree-integrator — runtime config loader.

File: src/worktree_integrator/config/loader.py

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (WTI_) > file > defaults.
- TOML loading via ``tomllib``.
- Environment variable mapping derived from config paths.
- Path normalization relative to config file location.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from worktree_integrator.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "integrator.toml"
ENV_PREFIX: Final[str] = "WTI_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence CLI > env > file > defaults.

    ``cli_overrides`` keys are dotted config paths (``integration.temp_root``).
    A missing default ``integrator.toml`` is fine; a missing explicit path is
    a ``ConfigLoadError``.
    """

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = assert_valid_config(merge_config(default_config(), file_payload))

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_overrides or {}))
    merged = assert_valid_config(merged)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Expand ``~``/env vars in path fields and anchor relative ones at ``base_dir``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        value = _get_nested(materialized, field_path)
        if isinstance(value, str):
            _set_nested(materialized, field_path, _normalize_one_path(value, base_dir))
    return materialized


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return a stable JSON dump of the effective config."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Pick up ``WTI_<SECTION>_<FIELD>`` variables for every scalar config field."""

    overrides: dict[str, Any] = {}
    for path, current in _scalar_fields(config):
        if path == ("meta", "schema_version"):
            continue
        coerce = _ENV_COERCERS.get(type(current))
        env_name = env_name_for_path(path)
        raw = environ.get(env_name)
        if coerce is None or raw is None:
            continue
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} {exc}") from exc
        _set_nested(overrides, path, value)
    return overrides


def _scalar_fields(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _scalar_fields(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _env_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _env_int(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError("must be an integer") from None


_ENV_COERCERS: Final[dict[type, Callable[[str], object]]] = {
    bool: _env_bool,
    int: _env_int,
    str: str,
}


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in sorted(cli_overrides.items()):
        if value is None:
            continue
        path = tuple(filter(None, key.split(".")))
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    *parents, leaf = path
    cursor = target
    for part in parents:
        child = cursor.get(part)
        if not isinstance(child, dict):
            child = cursor[part] = {}
        cursor = child
    cursor[leaf] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping):
            return None
        cursor = cursor.get(part)
    return cursor


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "normalize_paths",
]
