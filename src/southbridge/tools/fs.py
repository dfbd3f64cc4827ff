"""Filesystem tool collaborators.

Each function returns a dict with an ``error`` key that is None on success,
and never raises.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


def resolve_path(workspace: Path, target: str) -> Path:
    path = Path(target).expanduser()
    if path.is_absolute():
        return path
    return workspace / path


async def read_text_file(path: Path) -> dict[str, Any]:
    if not path.exists() or not path.is_file():
        return {"content": None, "error": f"File not found: {path}"}
    try:
        return {"content": path.read_text(encoding="utf-8"), "error": None}
    except Exception as exc:  # noqa: BLE001
        return {"content": None, "error": str(exc)}


async def write_text_file(path: Path, content: str) -> dict[str, Any]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except Exception as exc:  # noqa: BLE001
        return {"success": False, "path": str(path), "error": str(exc)}
    return {"success": True, "path": str(path), "error": None}


async def list_directory(path: Path) -> dict[str, Any]:
    try:
        entries = [
            {"name": item.name, "isDirectory": item.is_dir()}
            for item in sorted(path.iterdir(), key=lambda p: p.name)
        ]
    except Exception as exc:  # noqa: BLE001
        return {"entries": None, "error": str(exc)}
    return {"entries": entries, "error": None}
