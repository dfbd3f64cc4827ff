from __future__ import annotations

from pathlib import Path

from southbridge.config import DEFAULT_AGENT_URL, DEFAULT_MODEL, load_config


def test_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = load_config({})

    assert config.agent_url == DEFAULT_AGENT_URL == "http://localhost:3000"
    assert config.model == DEFAULT_MODEL == "claude-3-5-sonnet-20241022"
    assert config.workspace == tmp_path.resolve()
    assert config.sessions_dir.name == "sessions"
    assert config.audit_log.name == "session.log"
    assert config.auto_save is True


def test_environment_values(tmp_path: Path):
    config = load_config(
        {
            "AGENT_URL": "http://agent:9000",
            "MODEL": "other",
            "WORKSPACE": str(tmp_path),
            "SOUTHBRIDGE_SESSIONS_DIR": str(tmp_path / "s"),
            "SOUTHBRIDGE_AUDIT_LOG": str(tmp_path / "a.log"),
            "SOUTHBRIDGE_AUTO_SAVE": "no",
        }
    )

    assert config.agent_url == "http://agent:9000"
    assert config.model == "other"
    assert config.workspace == tmp_path.resolve()
    assert config.sessions_dir == tmp_path / "s"
    assert config.audit_log == tmp_path / "a.log"
    assert config.auto_save is False


def test_with_overrides_skips_none():
    config = load_config({"MODEL": "base"})

    updated = config.with_overrides(model=None, agent_url="http://x")

    assert updated.model == "base"
    assert updated.agent_url == "http://x"
    assert config.agent_url == DEFAULT_AGENT_URL
