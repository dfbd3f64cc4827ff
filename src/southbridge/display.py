"""Rich rendering for the interactive client.

Everything is rendered into a buffer first and written with prompt_toolkit so
output does not tear an active prompt.
"""

from __future__ import annotations

import json
from io import StringIO
from threading import Lock
from typing import Any, Iterable

from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console, Group
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from southbridge.dispatch import ToolInvocation
from southbridge.messages import Notification

_render_buffer = StringIO()
_render_console = Console(
    file=_render_buffer,
    force_terminal=True,
    color_system="standard",
    markup=False,
    highlight=False,
)
_render_lock = Lock()


def _render_and_print(*args: Any, **kwargs: Any) -> None:
    kwargs.setdefault("end", "\n")
    with _render_lock:
        _render_buffer.seek(0)
        _render_buffer.truncate(0)
        _render_console.print(*args, **kwargs)
        output = _render_buffer.getvalue()
    if output:
        print_formatted_text(ANSI(output), end="")


def render_to_text(*args: Any) -> str:
    """Render without colors; used by tests and plain logs."""
    console = Console(file=StringIO(), force_terminal=False, color_system=None, width=100)
    console.print(*args)
    return console.file.getvalue()  # type: ignore[attr-defined]


def tool_request_panel(invocation: ToolInvocation) -> Panel:
    params = json.dumps(invocation.params, indent=2, ensure_ascii=False)
    body = Group(
        Text.assemble(("Tool: ", "yellow"), (invocation.kind.value, "white"), ("  ", ""), (invocation.method, "dim")),
        Text("Params:", style="yellow"),
        Syntax(params, "json", theme="ansi_dark", background_color="default"),
    )
    return Panel(body, title="Tool Request", title_align="left", border_style="cyan", padding=(1, 1))


def print_tool_request(invocation: ToolInvocation) -> None:
    _render_and_print(tool_request_panel(invocation))


def print_approval(approved: bool) -> None:
    if approved:
        _render_and_print(Text("Approved - executing...", style="green"))
    else:
        _render_and_print(Text("Rejected by user", style="red"))


def print_info(message: str) -> None:
    _render_and_print(Text(message, style="cyan"))


def print_error(message: str) -> None:
    _render_and_print(Text(message, style="red"))


def print_sessions(session_ids: Iterable[str]) -> None:
    for index, session_id in enumerate(session_ids, start=1):
        _render_and_print(Text.assemble((f"{index:>3}. ", "cyan"), (session_id, "white")))


def _update_text(params: dict[str, Any]) -> str | None:
    update = params.get("update")
    if not isinstance(update, dict):
        return None
    content = update.get("content")
    if isinstance(content, dict) and content.get("type") == "text":
        return str(content.get("text", ""))
    if isinstance(content, list):
        parts = [str(block.get("text", "")) for block in content if isinstance(block, dict)]
        return "".join(parts) or None
    return None


def print_notification(notification: Notification) -> None:
    """Show agent updates: message chunks as text, anything else as a dim summary."""
    text = _update_text(notification.params)
    if text is not None:
        _render_and_print(Text(text), end="")
        return
    _render_and_print(Text(f"[{notification.method}]", style="dim"))
