"""Headless whale worker: warm up, then poll until SIGINT/SIGTERM.

Run from backend/ with:
    python -m workers.whale_worker

Signals are stored and alerted through the same sink the API process uses;
no dashboard is served.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys

_BACKEND = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND not in sys.path:
    sys.path.insert(0, _BACKEND)

from config import ConfigurationError, settings
from models.database import init_database
from services.runtime import Runtime, build_runtime
from utils.logger import get_logger, setup_logging

logger = get_logger("whale_worker")


def log_session_summary(runtime: Runtime) -> None:
    signals = runtime.engine.get_signal_log()
    logger.info(
        "Session summary",
        cycles=runtime.engine.get_status()["poll_count"],
        signals=len(signals),
        api_stats=runtime.client.get_stats(),
        sink=dict(runtime.sink.stats),
        alerts=dict(runtime.notifier.stats),
    )
    for sig in signals:
        logger.info("Signal", wallet_label=sig.context.wallet_label, contract=sig.target_contract)


async def run(runtime: Runtime, stop_event: asyncio.Event) -> None:
    await runtime.engine.start()
    await stop_event.wait()


async def main() -> int:
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    try:
        runtime = build_runtime(settings)
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        return 1

    await init_database()
    logger.info("Database initialized")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass

    try:
        await run(runtime, stop_event)
    except asyncio.CancelledError:
        logger.info("Whale worker cancelled")
    finally:
        logger.info("Shutting down...")
        await runtime.shutdown()
        log_session_summary(runtime)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
