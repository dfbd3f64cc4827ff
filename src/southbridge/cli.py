"""Interactive command-line client."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections import deque
from pathlib import Path

from dotenv import load_dotenv
from prompt_toolkit import PromptSession  # type: ignore

from southbridge.audit import AuditLog
from southbridge.config import ClientConfig, load_config
from southbridge.dispatch import ToolInvocation
from southbridge.display import (
    print_approval,
    print_error,
    print_info,
    print_notification,
    print_sessions,
    print_tool_request,
)
from southbridge.engine import SessionEngine
from southbridge.log_utils import build_log_config, configure_logging
from southbridge.session_store import SessionStore
from southbridge.transport import SSETransport

logger = logging.getLogger(__name__)

APPROVAL_TOKEN = "__APPROVAL__"
CLOSED_TOKEN = "__CLOSED__"
EXIT_COMMANDS = {"exit", "quit"}


class TerminalApprover:
    """Ask the operator about tool calls from the same prompt the REPL uses.

    A request arriving while the REPL waits for input interrupts that prompt;
    the loop then asks about every queued request before reading input again.
    """

    def __init__(self, session: PromptSession) -> None:
        self._session = session
        self._waiting: deque[tuple[ToolInvocation, asyncio.Future[bool]]] = deque()
        self._asking = False

    @property
    def pending(self) -> bool:
        return any(not future.done() for _, future in self._waiting)

    async def __call__(self, invocation: ToolInvocation) -> bool:
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._waiting.append((invocation, future))
        self.interrupt(APPROVAL_TOKEN)
        return await future

    def interrupt(self, token: str) -> None:
        app = self._session.app
        if self._asking or not app.is_running or app.is_done:
            return
        app.exit(result=token)

    def pre_run(self) -> None:
        # Covers requests queued between resolve_pending() and the next prompt.
        if self.pending:
            asyncio.get_running_loop().call_soon(self.interrupt, APPROVAL_TOKEN)

    async def resolve_pending(self) -> None:
        while self._waiting:
            invocation, future = self._waiting.popleft()
            if future.done():
                continue
            print_tool_request(invocation)
            approved = await self._ask()
            print_approval(approved)
            if not future.done():
                future.set_result(approved)

    async def _ask(self) -> bool:
        self._asking = True
        try:
            answer = await self._session.prompt_async("Approve this tool call? [Y/n] ")
        except (EOFError, KeyboardInterrupt):
            return False
        finally:
            self._asking = False
        return answer.strip().lower() in {"", "y", "yes"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="southbridge", description="Interactive ACP client with tool approval.")
    parser.add_argument("--url", help="Agent base URL (env AGENT_URL)")
    parser.add_argument("--model", help="Model requested from the agent (env MODEL)")
    parser.add_argument("--workspace", type=Path, help="Workspace directory for tool calls (env WORKSPACE)")
    parser.add_argument("--sessions-dir", type=Path, help="Directory holding saved sessions")
    parser.add_argument("--no-auto-save", action="store_true", help="Do not persist the session after each event")
    parser.add_argument("--resume", metavar="ID", help="Resume a saved session")
    parser.add_argument("--list-sessions", action="store_true", help="List saved sessions and exit")
    parser.add_argument("--delete-session", metavar="ID", help="Delete a saved session and exit")
    return parser


def resolve_config(args: argparse.Namespace, base: ClientConfig | None = None) -> ClientConfig:
    config = base or load_config()
    return config.with_overrides(
        agent_url=args.url,
        model=args.model,
        workspace=args.workspace.expanduser().resolve() if args.workspace else None,
        sessions_dir=args.sessions_dir,
        auto_save=False if args.no_auto_save else None,
    )


async def pick_session(session: PromptSession, store: SessionStore) -> str | None:
    """Offer saved sessions; returns the id to resume or None for a new one."""
    session_ids = store.list_sessions()
    if not session_ids:
        return None
    print_info("Found existing sessions:")
    print_info("  0. Start new session")
    print_sessions(session_ids)
    while True:
        try:
            answer = (await session.prompt_async("Select a session [0]: ")).strip()
        except (EOFError, KeyboardInterrupt):
            return None
        if answer in {"", "0"}:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(session_ids):
            return session_ids[int(answer) - 1]
        if answer in session_ids:
            return answer
        print_error(f"Invalid choice: {answer}")


async def _watch_closed(engine: SessionEngine, approver: TerminalApprover) -> None:
    await engine.wait_closed()
    approver.interrupt(CLOSED_TOKEN)


async def interactive_loop(engine: SessionEngine, session: PromptSession, approver: TerminalApprover) -> None:
    """Read prompts until exit, EOF or agent disconnect."""
    watcher = asyncio.create_task(_watch_closed(engine, approver))
    try:
        while True:
            await approver.resolve_pending()
            if engine.closed:
                print_error("Agent disconnected")
                break
            try:
                line = await session.prompt_async("→ ", pre_run=approver.pre_run)
            except EOFError:
                break
            except KeyboardInterrupt:
                print("", file=sys.stderr)
                continue

            if line == APPROVAL_TOKEN or line == CLOSED_TOKEN:
                continue
            text = line.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            try:
                await engine.send_prompt(text)
            except Exception as exc:  # noqa: BLE001
                logger.error("Prompt failed: %s", exc)
                print_error(f"Prompt failed: {exc}")
    finally:
        watcher.cancel()


async def run_client(config: ClientConfig, resume: str | None = None) -> int:
    session: PromptSession = PromptSession()
    approver = TerminalApprover(session)
    store = SessionStore(config.sessions_dir)
    engine = SessionEngine(
        SSETransport(config.agent_url),
        approver=approver,
        model=config.model,
        workspace_dir=config.workspace,
        store=store,
        audit=AuditLog(config.audit_log),
        auto_save=config.auto_save,
        on_notification=print_notification,
    )
    print_info(f"Agent URL: {config.agent_url}")

    if resume is None:
        resume = await pick_session(session, store)

    async with engine:
        try:
            await engine.start_session()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to start session: %s", exc)
            print_error(f"Failed to start session: {exc}")
            return 1

        resumed = False
        if resume is not None:
            resumed = await engine.resume_session(resume)
            if resumed:
                print_info(f"Resumed session {resume} ({len(engine.history)} history entries)")
            else:
                print_error(f"Session not found: {resume}")
        if not resumed:
            try:
                await engine.send_prompt(f"You are a coding agent. {engine.system_prompt()}")
            except Exception as exc:  # noqa: BLE001
                logger.error("Priming prompt failed: %s", exc)
                print_error(f"Priming prompt failed: {exc}")
                return 1

        print_info("Ready! Enter your commands below (exit to quit)")
        await interactive_loop(engine, session, approver)
    print_info("Goodbye!")
    return 0


async def main(argv: list[str]) -> int:
    args = build_parser().parse_args(argv[1:])
    config = resolve_config(args)
    store = SessionStore(config.sessions_dir)

    if args.list_sessions:
        for session_id in store.list_sessions():
            print(session_id)
        return 0
    if args.delete_session:
        store.delete(args.delete_session)
        print_info(f"Deleted session {args.delete_session}")
        return 0
    return await run_client(config, resume=args.resume)


def run(argv: list[str] | None = None) -> int:
    load_dotenv()
    configure_logging(build_log_config(log_file_name="client.log"))
    try:
        return asyncio.run(main(argv if argv is not None else sys.argv))
    except KeyboardInterrupt:
        return 130
