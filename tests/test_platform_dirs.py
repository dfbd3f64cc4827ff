from __future__ import annotations

import os
from pathlib import Path

from southbridge import paths
from southbridge.session_store import SessionStore


def test_platform_dirs_use_xdg_homes() -> None:
    expected_state = Path(os.environ["XDG_STATE_HOME"]) / "southbridge"

    assert paths.state_dir() == expected_state
    assert paths.log_dir().is_relative_to(expected_state)
    assert paths.sessions_dir() == expected_state / "sessions"


def test_session_store_defaults_to_state_dir() -> None:
    assert SessionStore().root == paths.state_dir() / "sessions"
