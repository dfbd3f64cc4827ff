"""Durable session records: identity, configuration and history.

One JSON file per session id lives under the sessions directory. Every save
rewrites the whole record through a temp file and ``os.replace`` so readers
never observe a half-written session.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from southbridge.log_utils import log_event
from southbridge.paths import sessions_dir

logger = logging.getLogger(__name__)

SESSIONS_DIR_ENV = "SOUTHBRIDGE_SESSIONS_DIR"
RECORD_SUFFIX = ".json"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HistoryKind(str, Enum):
    PROMPT = "prompt"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    kind: HistoryKind = Field(alias="type")
    payload: Any = Field(default=None, alias="data")
    timestamp: str = Field(default_factory=utc_now_iso)


class Session(BaseModel):
    """In-memory session state; serialized with the camelCase record keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="sessionId")
    model: str
    workspace_dir: str = Field(alias="workspaceDir")
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=utc_now_iso, alias="timestamp")
    history: List[HistoryEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _created_at_from_timestamp(cls, data: Any) -> Any:
        # Records from older clients carry only ``timestamp``.
        if isinstance(data, dict) and "createdAt" not in data and "created_at" not in data:
            stamp = data.get("timestamp") or data.get("updated_at")
            if stamp:
                data = {**data, "createdAt": stamp}
        return data

    def append(self, kind: HistoryKind, payload: Any) -> HistoryEntry:
        entry = HistoryEntry(kind=kind, payload=payload)
        self.history.append(entry)
        self.updated_at = entry.timestamp
        return entry

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def default_sessions_root() -> Path:
    override = os.getenv(SESSIONS_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return sessions_dir()


def _valid_session_id(session_id: str) -> bool:
    if not session_id or session_id in {".", ".."}:
        return False
    return "/" not in session_id and "\\" not in session_id and os.sep not in session_id


class SessionStore:
    """Save, load, list and delete session records.

    Failures are logged as warnings and reported through return values; the
    caller keeps running on its in-memory state.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or default_sessions_root()

    def _path(self, session_id: str) -> Path | None:
        if not _valid_session_id(session_id):
            log_event(logger, "session_store.invalid_id", level=logging.WARNING, session_id=session_id)
            return None
        return self.root / f"{session_id}{RECORD_SUFFIX}"

    def save(self, session_id: str, session: Session) -> bool:
        path = self._path(session_id)
        if path is None:
            return False
        try:
            self._atomic_write(path, json.dumps(session.to_record(), indent=2, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as exc:
            log_event(logger, "session_store.save.failed", level=logging.WARNING, session_id=session_id, error=str(exc))
            return False
        return True

    def load(self, session_id: str) -> Session | None:
        path = self._path(session_id)
        if path is None or not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return Session.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            log_event(logger, "session_store.load.failed", level=logging.WARNING, session_id=session_id, error=str(exc))
            return None

    def list_sessions(self) -> list[str]:
        try:
            return sorted(p.stem for p in self.root.glob(f"*{RECORD_SUFFIX}") if p.is_file())
        except OSError as exc:
            log_event(logger, "session_store.list.failed", level=logging.WARNING, error=str(exc))
            return []

    def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            log_event(logger, "session_store.delete.failed", level=logging.WARNING, session_id=session_id, error=str(exc))

    @staticmethod
    def _atomic_write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
