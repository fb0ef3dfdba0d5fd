# src/taskminder/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads data, runs the one-shot startup
cleanup, then starts the console REPL (optional).
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, start_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        kv = state.kv
        if hasattr(kv, "close"):
            kv.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


async def _run(state: AppState, console_enabled: bool) -> None:
    await start_state(state)

    if console_enabled:
        await run_console_loop(state)
    else:
        logger.info("Console disabled. Startup maintenance done, exiting.")


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.log_dir, console_level=settings.log_level)

    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state, settings.console_enabled))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
