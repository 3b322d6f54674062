# src/taskflow/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tasks.task_store import TaskStoreError

logger = logging.getLogger(__name__)

PROMPT = ">>> "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def _load_and_greet(state: AppState) -> None:
    try:
        await state.controller.load()
    except TaskStoreError as e:
        _print_ts(f"Could not load tasks: {e}. Use /reload to try again.")
        return

    s = state.controller.stats()
    _print_ts(f"{s.total} task(s): {s.todo} to do, {s.in_progress} in progress, {s.done} completed.")

    if state.advisor.enabled:
        # Decorative; must not hold up the task list.
        async def _insight() -> None:
            state.insight = await state.advisor.daily_insight(state.controller.titles())
            _print_ts(f"AI Assistant says: {state.insight}")

        state.track(asyncio.create_task(_insight()))


async def run_console_loop(state: AppState) -> None:
    """
    Interactive REPL.

    input() runs in a worker thread so background flows (optimistic status
    changes, the daily insight) keep completing while the prompt waits.
    """
    app_name = str(getattr(getattr(state, "settings", None), "app_name", "taskflow"))
    logger.info("Console connector started (ai=%s).", state.advisor.enabled)
    _print_ts(f"[{app_name}] Type /help for commands, /list to see tasks, /exit to quit.\n")

    await _load_and_greet(state)

    while True:
        try:
            line = (await asyncio.to_thread(input, PROMPT)).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not line.startswith("/"):
            _print_ts("Commands start with '/'. Try /help.")
            continue

        try:
            reply = await command_registry.handle(state, line, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            _print_ts(reply)

    if state.pending:
        _print_ts(f"Waiting for {len(state.pending)} pending change(s)...")
        await asyncio.gather(*list(state.pending), return_exceptions=True)

    logger.info("Console connector finished.")
