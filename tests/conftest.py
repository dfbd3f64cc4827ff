from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Force tests to use a temporary HOME/XDG dirs so nothing touches real app state."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(base / ".local" / "share"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(base / ".cache"))
    monkeypatch.setattr(Path, "home", lambda: base)
    for name in (
        "AGENT_URL",
        "MODEL",
        "WORKSPACE",
        "SOUTHBRIDGE_SESSIONS_DIR",
        "SOUTHBRIDGE_AUDIT_LOG",
        "SOUTHBRIDGE_AUTO_SAVE",
    ):
        monkeypatch.delenv(name, raising=False)
