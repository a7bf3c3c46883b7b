"""Structured logging setup with JSON-lines output and redaction support.

Domain modules log through ``structlog.get_logger(__name__)`` with an event
name and keyword fields. ``configure_structlog`` hands those events to stdlib
``logging`` so they reach the queue-backed JSON sink configured by
``setup_structured_logging``, with the keyword fields under ``fields``.

Git output can echo remote URLs, so every message, correlation value and extra
field passes through a redactor before it is written.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOG_FILENAME: Final[str] = "integrator.jsonl"
_DEFAULT_LOGGER_NAME: Final[str] = "worktree_integrator"
_DEFAULT_QUEUE_SIZE: Final[int] = 4096

# Record attributes promoted to top-level keys of the JSON event.
_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "integration_id",
    "session",
    "repo_root",
    "target_branch",
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

# Applied in order; git remotes may carry ``user:token@`` userinfo.
_STRING_REDACTIONS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(r"(?i)\b((?:https?|ssh|git|ftp)s?://)[^/@\s]+@"),
        rf"\g<1>{_REDACTED_VALUE}@",
    ),
    (
        re.compile(
            r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
        ),
        rf"\g<1>\g<2>{_REDACTED_VALUE}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {_REDACTED_VALUE}"),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), _REDACTED_VALUE),
)

_BUILTIN_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "correlation"}

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "worktree_integrator_correlation", default=()
)

_ACTIVE_LOCK = threading.Lock()
_active_handle: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for queue-backed structured logging."""

    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = _DEFAULT_QUEUE_SIZE
    log_filename: str = _DEFAULT_LOG_FILENAME
    log_to_file: bool = False
    log_to_stderr: bool = True
    redactor: LogRedactor | None = None


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    verbose: bool = False,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> StructuredLoggingHandle:
    """Configure logging from an ``[observability]`` config section.

    JSON lines go to stderr only when ``verbose`` is set (at DEBUG level) and
    to ``<log_dir>/<run_id>/integrator.jsonl`` when ``log_to_file`` is on.
    structlog is routed into the same sinks.
    """

    section = dict(observability_config or {})
    configured_level = section.get("log_level")
    if verbose:
        level: int | str = "DEBUG"
    elif isinstance(configured_level, str):
        level = configured_level
    else:
        level = "INFO"
    log_dir = section.get("log_dir")

    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=log_dir if isinstance(log_dir, (Path, str)) else "logs",
            logger_name=logger_name,
            level=level,
            log_to_file=bool(section.get("log_to_file", False)),
            log_to_stderr=verbose,
            redactor=None if section.get("redact_secrets", True) else _no_redaction,
        )
    )
    configure_structlog()
    return handle


def configure_structlog() -> None:
    """Route structlog events through stdlib logging as ``event`` + extra fields."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Never blocks the caller: records are counted and dropped when the queue is full.

    The correlation context is captured here, on the logging thread, because
    the listener thread formats the record later.
    """

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        context = get_correlation_context()
        if context:
            record.correlation = context
        return super().prepare(record)  # type: ignore[no-any-return]

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, *, redactor: LogRedactor, run_id: str) -> None:
        super().__init__()
        self._redact = redactor
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": self._text(record.getMessage()),
        }
        for key, value in sorted(self._correlation(record).items()):
            event[key] = self._text(value)

        extras = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _BUILTIN_RECORD_ATTRIBUTES
            and key not in _CORRELATION_KEYS
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = self._redact(extras)
        if record.exc_info is not None:
            event["exception"] = self._text(self.formatException(record.exc_info))

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def _correlation(self, record: logging.LogRecord) -> dict[str, str]:
        fields = {"run_id": self._run_id}
        scoped = getattr(record, "correlation", None)
        if isinstance(scoped, Mapping):
            fields.update({str(key): str(value) for key, value in scoped.items() if value})
        for key in _CORRELATION_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str) and value.strip():
                fields[key] = value.strip()
        return fields

    def _text(self, value: object) -> str:
        redacted = self._redact(_to_json(value))
        if isinstance(redacted, str):
            return redacted
        return json.dumps(redacted, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Runtime handle for an active structured logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        queue_handler: _DroppingQueueHandler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._sinks = sinks
        self._listener = listener
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        pending = self._queue_handler.queue
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while pending.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Configure queue-backed structured logging for one CLI run.

    Any previously active setup is shut down first; only one handle is live
    at a time and it is closed again at interpreter exit.
    """

    run_id = _require_text("run_id", config.run_id)
    log_filename = _require_text("log_filename", config.log_filename)
    if Path(log_filename).name != log_filename:
        raise ValueError("log_filename must not include path separators")
    logger_name = _require_text("logger_name", config.logger_name)
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _parse_log_level(config.level)

    shutdown_logging()

    formatter = _JsonLinesFormatter(
        redactor=config.redactor or default_log_redactor,
        run_id=run_id,
    )
    sinks: list[logging.Handler] = []
    log_path: Path | None = None
    if config.log_to_file:
        log_path = Path(config.base_log_dir).expanduser() / run_id / log_filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    queue_handler = _DroppingQueueHandler(queue.Queue(maxsize=config.queue_size))
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(
        queue_handler.queue, *sinks, respect_handler_level=True
    )
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )
    _activate(handle)
    return handle


def flush_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Flush queued logs to configured sinks."""

    target = handle or get_active_logging_handle()
    if target is not None:
        target.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop the listener and close all sinks. Safe to call repeatedly."""

    global _active_handle
    target = handle or get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _ACTIVE_LOCK:
        if _active_handle is target:
            _active_handle = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_LOCK:
        return _active_handle


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""

    return dict(_CORRELATION_CONTEXT.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Bind fields for the current context; ``None`` unbinds a key. Returns a reset token."""

    state = get_correlation_context()
    for key, value in fields.items():
        name = _require_text("correlation key", key)
        if value is None:
            state.pop(name, None)
        else:
            state[name] = _require_text("correlation value", value)
    return _CORRELATION_CONTEXT.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    _CORRELATION_CONTEXT.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for log records in scope."""

    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def default_log_redactor(value: JSONValue, *, key: str | None = None) -> JSONValue:
    """Mask credential-looking keys and string fragments, recursing into containers."""

    if key is not None and any(term in key.lower() for term in _SENSITIVE_KEY_TERMS):
        return _REDACTED_VALUE
    if isinstance(value, str):
        for pattern, replacement in _STRING_REDACTIONS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {name: default_log_redactor(item, key=name) for name, item in value.items()}
    return value


def _no_redaction(value: JSONValue) -> JSONValue:
    return value


def _activate(handle: StructuredLoggingHandle) -> None:
    global _active_handle, _atexit_hooked
    with _ACTIVE_LOCK:
        _active_handle = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True


def _require_text(name: str, value: object) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    if not value.strip():
        raise ValueError(f"{name} must not be empty")
    return value.strip()


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    parsed = logging.getLevelName(value.strip().upper())
    if not isinstance(parsed, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return parsed


def _utc_timestamp(epoch_seconds: float) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _to_json(value: object) -> JSONValue:
    """Best-effort conversion of arbitrary log payloads into JSON-safe values."""

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=repr)
    return repr(value)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
