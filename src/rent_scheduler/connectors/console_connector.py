# src/rent_scheduler/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console_loop(state: AppState) -> None:
    """
    Admin console: reads slash commands from stdin while the scheduler keeps
    ticking on the same event loop. Returns on /exit, EOF or Ctrl+C.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    while True:
        try:
            # input() blocks; keep it off the event loop.
            user_input = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, user_input, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        _print_ts(reply)

    logger.info("Console connector finished.")
