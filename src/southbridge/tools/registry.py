"""Tool kinds and the method-name spellings that route to each of them."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Type

from pydantic import BaseModel

from .args import ListDirectoryArgs, ReadFileArgs, RunCommandArgs, WriteFileArgs


class ToolKind(str, Enum):
    WRITE_FILE = "write_file"
    READ_FILE = "read_file"
    LIST_DIRECTORY = "list_directory"
    RUN_COMMAND = "run_command"


# Agents disagree on naming: bare, slash-namespaced and dot-namespaced
# spellings must all route to the same handler.
TOOL_METHODS: Dict[ToolKind, tuple[str, ...]] = {
    ToolKind.WRITE_FILE: ("writeTextFile", "fs/writeTextFile", "fs.writeTextFile", "fs/write_text_file"),
    ToolKind.READ_FILE: ("readTextFile", "fs/readTextFile", "fs.readTextFile", "fs/read_text_file"),
    ToolKind.LIST_DIRECTORY: ("listDirectory", "fs/listDirectory", "fs.listDirectory"),
    ToolKind.RUN_COMMAND: ("createTerminal", "terminal/create", "terminal.create"),
}

TOOL_ARG_MODELS: Dict[ToolKind, Type[BaseModel]] = {
    ToolKind.WRITE_FILE: WriteFileArgs,
    ToolKind.READ_FILE: ReadFileArgs,
    ToolKind.LIST_DIRECTORY: ListDirectoryArgs,
    ToolKind.RUN_COMMAND: RunCommandArgs,
}

_METHOD_INDEX: Dict[str, ToolKind] = {
    method: kind for kind, methods in TOOL_METHODS.items() for method in methods
}


def match_tool(method: str) -> ToolKind | None:
    """Return the tool kind for ``method`` or None when it is not a tool call."""
    return _METHOD_INDEX.get(method)


def parse_tool_args(kind: ToolKind, params: dict) -> BaseModel:
    """Validate ``params`` for ``kind``; raises ``pydantic.ValidationError``."""
    return TOOL_ARG_MODELS[kind].model_validate(params)
