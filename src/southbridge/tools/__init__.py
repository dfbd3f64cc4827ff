"""Tool kinds, argument models and default collaborators."""

from __future__ import annotations

from southbridge.tools.args import ListDirectoryArgs, ReadFileArgs, RunCommandArgs, WriteFileArgs
from southbridge.tools.backend import ToolBackend, default_backend
from southbridge.tools.fs import resolve_path
from southbridge.tools.registry import TOOL_ARG_MODELS, TOOL_METHODS, ToolKind, match_tool, parse_tool_args
from southbridge.tools.shell import AsyncioProcessRunner, CommandResult, ProcessRunner, select_process_runner

__all__ = [
    "AsyncioProcessRunner",
    "CommandResult",
    "ListDirectoryArgs",
    "ProcessRunner",
    "ReadFileArgs",
    "RunCommandArgs",
    "TOOL_ARG_MODELS",
    "TOOL_METHODS",
    "ToolBackend",
    "ToolKind",
    "WriteFileArgs",
    "default_backend",
    "match_tool",
    "parse_tool_args",
    "resolve_path",
    "select_process_runner",
]
