from __future__ import annotations

from southbridge.dispatch import ToolInvocation
from southbridge.display import render_to_text, tool_request_panel
from southbridge.tools import ToolKind


def test_tool_request_panel_shows_tool_and_params():
    invocation = ToolInvocation(
        request_id=1,
        kind=ToolKind.RUN_COMMAND,
        method="terminal/create",
        params={"command": "pytest", "args": ["-q"]},
    )

    text = render_to_text(tool_request_panel(invocation))

    assert "Tool Request" in text
    assert "run_command" in text
    assert "terminal/create" in text
    assert '"command": "pytest"' in text
