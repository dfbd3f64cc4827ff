"""Client configuration resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from southbridge.audit import AUDIT_LOG_ENV, AUDIT_LOG_FILE
from southbridge.log_utils import parse_bool
from southbridge.paths import log_dir, sessions_dir
from southbridge.session_store import SESSIONS_DIR_ENV

DEFAULT_AGENT_URL = "http://localhost:3000"
DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


@dataclass(frozen=True)
class ClientConfig:
    agent_url: str = DEFAULT_AGENT_URL
    model: str = DEFAULT_MODEL
    workspace: Path = Path(".")
    sessions_dir: Path | None = None
    audit_log: Path | None = None
    auto_save: bool = True

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_config(environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Read ``AGENT_URL``, ``MODEL``, ``WORKSPACE`` and the ``SOUTHBRIDGE_*`` settings."""
    env = os.environ if environ is None else environ

    workspace = Path(env.get("WORKSPACE") or os.getcwd()).expanduser()
    sessions = env.get(SESSIONS_DIR_ENV)
    audit = env.get(AUDIT_LOG_ENV)
    return ClientConfig(
        agent_url=env.get("AGENT_URL") or DEFAULT_AGENT_URL,
        model=env.get("MODEL") or DEFAULT_MODEL,
        workspace=workspace.resolve(),
        sessions_dir=Path(sessions).expanduser() if sessions else sessions_dir(),
        audit_log=Path(audit).expanduser() if audit else log_dir() / AUDIT_LOG_FILE,
        auto_save=parse_bool(env.get("SOUTHBRIDGE_AUTO_SAVE"), True),
    )
