"""Append-only audit trail of prompts and tool activity."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from southbridge.log_utils import log_event
from southbridge.paths import log_dir

logger = logging.getLogger(__name__)

AUDIT_LOG_ENV = "SOUTHBRIDGE_AUDIT_LOG"
AUDIT_LOG_FILE = "session.log"
ENTRY_SEPARATOR = "---"


class AuditKind(str, Enum):
    PROMPT = "PROMPT"
    TOOL_CALL = "TOOL_CALL"
    TOOL_RESULT = "TOOL_RESULT"
    TOOL_ERROR = "TOOL_ERROR"
    INFO = "INFO"
    ERROR = "ERROR"


def default_audit_path() -> Path:
    override = os.getenv(AUDIT_LOG_ENV)
    if override:
        return Path(override).expanduser()
    return log_dir() / AUDIT_LOG_FILE


class AuditLog:
    """Receipts of what was prompted, requested and executed.

    Each entry is ``[<iso timestamp>] [<KIND>] <json>`` followed by a ``---``
    line. Write failures are logged and otherwise ignored.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_audit_path()

    def record(self, kind: AuditKind, data: Any) -> bool:
        timestamp = datetime.now(timezone.utc).isoformat()
        body = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        entry = f"[{timestamp}] [{kind.value}] {body}\n{ENTRY_SEPARATOR}\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(entry)
        except OSError as exc:
            log_event(logger, "audit.write.failed", level=logging.WARNING, path=str(self.path), error=str(exc))
            return False
        return True

    def read_entries(self) -> list[tuple[str, str, Any]]:
        """Parse the file back into ``(timestamp, kind, data)`` tuples."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        entries: list[tuple[str, str, Any]] = []
        for chunk in text.split(f"\n{ENTRY_SEPARATOR}\n"):
            chunk = chunk.strip()
            if not chunk.startswith("["):
                continue
            stamp, _, rest = chunk[1:].partition("] [")
            kind, _, body = rest.partition("] ")
            try:
                data = json.loads(body)
            except json.JSONDecodeError:
                data = body
            entries.append((stamp, kind, data))
        return entries
