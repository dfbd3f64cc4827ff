"""Command execution behind a single process-runner interface."""

from __future__ import annotations

import asyncio
import asyncio.subprocess as aio_subprocess
import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str


class ProcessRunner(Protocol):
    async def run(
        self,
        command: str,
        args: list[str],
        cwd: Path,
        timeout: float | None = None,
    ) -> CommandResult: ...


class AsyncioProcessRunner:
    """Spawn commands with ``asyncio.create_subprocess_exec``."""

    async def run(
        self,
        command: str,
        args: list[str],
        cwd: Path,
        timeout: float | None = None,
    ) -> CommandResult:
        try:
            proc = await aio_subprocess.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd),
                stdout=aio_subprocess.PIPE,
                stderr=aio_subprocess.PIPE,
                env=os.environ.copy(),
            )
        except (OSError, ValueError) as exc:
            return CommandResult(exit_code=1, stdout="", stderr=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.communicate()
            return CommandResult(exit_code=1, stdout="", stderr=f"Command timed out after {timeout}s")
        except asyncio.CancelledError:
            _kill(proc)
            await asyncio.shield(proc.wait())
            raise

        return CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else 1,
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
        )


def _kill(proc: aio_subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()


def select_process_runner() -> ProcessRunner:
    """Pick the process backend once at startup."""
    return AsyncioProcessRunner()


async def run_command(
    runner: ProcessRunner,
    command: str,
    args: list[str],
    cwd: Path,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Run a command; a non-zero exit is reported through ``exitCode``, not ``error``."""
    logger.info("Running shell command: %s %s", command, " ".join(args))
    result = await runner.run(command, args, cwd, timeout)
    return {
        "exitCode": result.exit_code,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "error": None,
    }
