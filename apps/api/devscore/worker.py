"""
Standalone sweep worker: runs the analysis and report triggers without the API.

    python -m devscore.worker
"""
from __future__ import annotations

import asyncio
import logging
import signal

from devscore.core.logging_config import setup_logging
from devscore.db.session import engine
from devscore.services.queue import build_triggers, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


async def run_worker_forever() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    triggers = build_triggers()
    await start_scheduler(triggers)
    logger.info("Sweep worker started")
    try:
        await stop.wait()
    finally:
        await stop_scheduler(triggers)
        await engine.dispose()
        logger.info("Sweep worker stopped")


def main() -> None:
    setup_logging()
    asyncio.run(run_worker_forever())


if __name__ == "__main__":
    main()
