from __future__ import annotations

from pathlib import Path

from southbridge.audit import AuditKind, AuditLog, default_audit_path


def test_entries_are_appended_with_kind_and_separator(tmp_path: Path):
    log = AuditLog(tmp_path / "logs" / "session.log")

    assert log.record(AuditKind.PROMPT, "hello")
    assert log.record(AuditKind.TOOL_CALL, {"tool": "write_file", "params": {"path": "a"}})

    text = log.path.read_text()
    assert text.count("\n---\n") == 2
    assert "] [PROMPT] \"hello\"" in text
    entries = log.read_entries()
    assert [(kind, data) for _, kind, data in entries] == [
        ("PROMPT", "hello"),
        ("TOOL_CALL", {"tool": "write_file", "params": {"path": "a"}}),
    ]


def test_write_failure_is_not_raised(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("")

    assert AuditLog(blocker / "session.log").record(AuditKind.ERROR, "x") is False


def test_default_path_honours_env(tmp_path: Path, monkeypatch):
    assert default_audit_path().name == "session.log"

    monkeypatch.setenv("SOUTHBRIDGE_AUDIT_LOG", str(tmp_path / "audit.txt"))

    assert default_audit_path() == tmp_path / "audit.txt"
    assert AuditLog().path == tmp_path / "audit.txt"
