# src/rent_scheduler/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs on one event loop:
- the task scheduler (optional),
- the admin console in the foreground (optional); without it, waits for SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    state.scheduler.stop()
    try:
        await state.scheduler.drain()
    except Exception:
        logger.exception("Failed to wait for running tasks.")

    try:
        state.store.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


async def _serve(state: AppState) -> None:
    settings = state.settings
    stop_main = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        # Some platforms do not support signal handlers on the loop.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop_main.set)

    try:
        if settings.scheduler_enabled:
            await state.scheduler.start()
        else:
            logger.info("Scheduler disabled by settings.")

        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state))
            stopper = asyncio.create_task(stop_main.wait())
            await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stopper.cancel()
        else:
            logger.info("Console disabled. Running scheduler only. Press Ctrl+C to stop.")
            await stop_main.wait()
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_serve(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
