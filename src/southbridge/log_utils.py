"""Logging setup for the client plus structured context helpers.

Records go to a rotating file in the platformdirs log directory; the terminal
belongs to the REPL, so stderr output is opt-in via ``SOUTHBRIDGE_LOG_STDERR``.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping

from southbridge.paths import log_dir

ENV_PREFIX = "SOUTHBRIDGE_LOG_"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore")

_LOG_CONTEXT: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "southbridge_log_context", default={}
)


@dataclass(frozen=True)
class LogConfig:
    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    max_bytes: int = 5_000_000
    backup_count: int = 3
    logger_levels: Dict[str, int] = field(default_factory=dict)


def parse_level(value: str | None, default: int) -> int:
    """Accept ``debug``/``INFO``/``15``-style values; unknown names give ``default``."""
    if not value:
        return default
    if value.isdigit():
        return int(value)
    return logging.getLevelNamesMapping().get(value.upper(), default)


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def build_log_config(
    *,
    log_file_name: str,
    default_level: int = logging.INFO,
    environ: Mapping[str, str] | None = None,
) -> LogConfig:
    """Read ``SOUTHBRIDGE_LOG_{DIR,LEVEL,STDERR,JSON,MAX_BYTES,BACKUPS}``."""
    env = os.environ if environ is None else environ

    def setting(name: str) -> str | None:
        return env.get(ENV_PREFIX + name)

    rotation: Dict[str, int] = {}
    for name, key in (("MAX_BYTES", "max_bytes"), ("BACKUPS", "backup_count")):
        raw = setting(name)
        if raw is not None and raw.strip().isdigit():
            rotation[key] = int(raw)

    directory = Path(setting("DIR") or log_dir())
    directory.mkdir(parents=True, exist_ok=True)
    return LogConfig(
        log_file=directory / log_file_name,
        level=parse_level(setting("LEVEL"), default_level),
        stderr=parse_bool(setting("STDERR"), False),
        json=parse_bool(setting("JSON"), False),
        logger_levels={name: logging.WARNING for name in QUIET_LOGGERS},
        **rotation,
    )


def configure_logging(config: LogConfig) -> None:
    """Replace root handlers with the configured file (and optional stderr) handler."""
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(config.level)

    formatter = JsonFormatter() if config.json else ContextFormatter(TEXT_FORMAT)
    targets: list[logging.Handler] = [
        RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    ]
    if config.stderr:
        targets.append(logging.StreamHandler())
    for handler in targets:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
        root.addHandler(handler)

    for name, level in config.logger_levels.items():
        logging.getLogger(name).setLevel(level)


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach fields (session id, request id, ...) to every record in the block.

    None values are dropped so callers can pass optional ids unconditionally.
    """
    token = _LOG_CONTEXT.set(_LOG_CONTEXT.get() | {k: v for k, v in fields.items() if v is not None})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a short, stable event name with structured fields."""

    logger.log(level, event, extra={"event_fields": fields})


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        needs_quotes = value == "" or any(ch.isspace() or ch in '="' for ch in value)
        return json.dumps(value) if needs_quotes else value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
    return str(value)


def render_fields(*groups: Mapping[str, Any]) -> str:
    """Render ``key=value`` pairs, each group sorted, skipping None values."""
    return " ".join(
        f"{key}={_render_value(group[key])}"
        for group in groups
        for key in sorted(group)
        if group[key] is not None
    )


class ContextFilter(logging.Filter):
    """Snapshot the active ``log_context`` onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        record.context_fields = dict(_LOG_CONTEXT.get())
        if not hasattr(record, "event_fields"):
            record.event_fields = {}
        return True


class ContextFormatter(logging.Formatter):
    """Plain text lines with ``key=value`` context appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        suffix = render_fields(getattr(record, "context_fields", {}), getattr(record, "event_fields", {}))
        return f"{line} {suffix}" if suffix else line


class JsonFormatter(logging.Formatter):
    """One JSON object per line; tracebacks go under ``exc``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, attr in (("context", "context_fields"), ("fields", "event_fields")):
            value = getattr(record, attr, None)
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)
