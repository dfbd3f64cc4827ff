"""Collaborator bundle the dispatcher executes approved tool calls against."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from . import fs, shell
from .shell import ProcessRunner, select_process_runner

ReadTextFile = Callable[[Path], Awaitable[dict[str, Any]]]
WriteTextFile = Callable[[Path, str], Awaitable[dict[str, Any]]]
ListDirectory = Callable[[Path], Awaitable[dict[str, Any]]]
RunCommand = Callable[[str, list[str], Path, float | None], Awaitable[dict[str, Any]]]


@dataclass
class ToolBackend:
    """Pluggable tool implementations; each returns a dict with an ``error`` key."""

    write_text_file: WriteTextFile
    read_text_file: ReadTextFile
    list_directory: ListDirectory
    run_command: RunCommand


def default_backend(runner: ProcessRunner | None = None) -> ToolBackend:
    runner = runner or select_process_runner()
    return ToolBackend(
        write_text_file=fs.write_text_file,
        read_text_file=fs.read_text_file,
        list_directory=fs.list_directory,
        run_command=functools.partial(shell.run_command, runner),
    )
