"""
worktree-integrator config package public API.

File: src/worktree_integrator/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``integrator.toml`` + ``WTI_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from worktree_integrator.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
    normalize_paths,
)
from worktree_integrator.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    IntegratorConfig,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "IntegratorConfig",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "validate_config",
]
