# src/sms_hub/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then either runs one command given on
the command line (`sms-hub /countries`) or an interactive console loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from datetime import datetime

from ..cli.bootstrap import create_app_state
from ..cli.commands import registry as command_registry
from ..config import Settings
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _emit(text: str) -> None:
    # Immediate user-visible feedback for long operations (e.g., syncs)
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console_loop(state: AppState) -> None:
    logger.info("Console started.")
    _emit("[CONSOLE] Type a command. Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break

        if not line:
            continue
        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        reply = await command_registry.handle(state, line, emit=_emit)
        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        print(f"[{_ts_local()}] {reply}")


async def _shutdown(state: AppState) -> None:
    """Stop the queue and close clients; errors are logged, not raised."""
    try:
        await state.aclose()
    except Exception:
        logger.exception("Shutdown failed.")


async def _run(argv: list[str]) -> int:
    settings = Settings.from_env()

    # choose console log level from settings.log_level
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(
        log_dir=settings.data_dir,
        console_level=console_level,
        write_to_file=settings.log_to_file,
    )

    logger.info("Starting %s (%s)...", settings.app_name, settings.environment)

    try:
        state = await create_app_state(settings)
    except ValueError as exc:
        logger.error("Cannot start: %s", exc)
        return 2

    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    if main_task is not None:
        # Not supported on every platform (e.g. Windows event loops).
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGTERM, main_task.cancel)

    try:
        if argv:
            line = " ".join(argv)
            if not line.startswith("/"):
                line = "/" + line
            print(await command_registry.handle(state, line, emit=_emit))
        else:
            await run_console_loop(state)
    finally:
        await _shutdown(state)
        logger.info("Bye.")
    return 0


def main() -> None:
    try:
        code = asyncio.run(_run(sys.argv[1:]))
    except (KeyboardInterrupt, asyncio.CancelledError):
        code = 130
    raise SystemExit(code)


if __name__ == "__main__":
    main()
