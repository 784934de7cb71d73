"""Main entry point for the background sync service."""
import asyncio
import logging
import os
import signal
import sys

from wordsync import monitoring
from wordsync.app import WordSyncApp
from wordsync.config import ensure_directories, settings
from wordsync.logging_config import setup_logging

logger = logging.getLogger("wordsync")


async def shutdown(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    """Ask the main loop to stop."""
    logger.info("Received exit signal %s...", sig.name)
    stop_event.set()


async def main(user_id: str) -> None:
    """Run the sync service until a termination signal arrives."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown(s, stop_event)))

    if settings.monitoring.enabled:
        monitoring.start_monitoring(settings.monitoring.port)
        logger.info("Metrics exported on port %d", settings.monitoring.port)

    app = WordSyncApp(user_id)
    try:
        logger.info("Starting sync service...")
        await app.start()
        await stop_event.wait()
    finally:
        logger.info("Cleaning up...")
        await app.stop()


if __name__ == "__main__":
    ensure_directories()
    setup_logging("Starting wordsync sync service ...")

    user = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORDSYNC_USER_ID")
    if not user:
        logger.error("Usage: python -m wordsync <user_id> (or set WORDSYNC_USER_ID)")
        sys.exit(2)

    try:
        asyncio.run(main(user))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
