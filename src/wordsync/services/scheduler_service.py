"""Service for running synchronization in the background."""
import asyncio
import logging
from typing import Dict, Optional

from wordsync.config import settings
from wordsync.errors import OfflineError, SyncInProgressError
from wordsync.models.sync_models import SyncReport
from wordsync.services.sync_service import Synchronizer

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Periodically drains the offline queue while online."""

    def __init__(self, synchronizer: Synchronizer, interval: Optional[float] = None):
        """Initialize the scheduler with the learner's synchronizer."""
        self.synchronizer = synchronizer
        self.interval = settings.sync.interval_seconds if interval is None else interval
        self.tasks: Dict[str, asyncio.Task] = {}
        self.running = False
        self.last_report: Optional[SyncReport] = None

    async def start(self) -> None:
        """Start the scheduler service."""
        if self.running:
            return

        self.running = True
        logger.info("Starting sync scheduler (every %ss)...", self.interval)
        self.tasks["periodic_sync"] = asyncio.create_task(self._run_periodic_sync())

    async def stop(self) -> None:
        """Stop the scheduler, cancelling any sync in flight."""
        if not self.running:
            return

        self.running = False
        logger.info("Stopping sync scheduler...")

        self.synchronizer.cancel()
        for task in self.tasks.values():
            task.cancel()

        # Wait for tasks to complete
        await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        self.tasks.clear()

    async def sync_now(self) -> Optional[SyncReport]:
        """Run one sync if possible. Returns None when offline or already syncing."""
        if not self.synchronizer.queue.has_pending_changes(self.synchronizer.progress.user_id):
            return None
        try:
            self.last_report = await self.synchronizer.sync()
        except OfflineError:
            logger.debug("Skipping sync: offline")
            return None
        except SyncInProgressError:
            logger.debug("Skipping sync: already running")
            return None

        if self.last_report.needs_attention:
            logger.warning(
                "%d mutation(s) need attention after sync",
                len(self.last_report.dead_letters),
            )
        return self.last_report

    async def _run_periodic_sync(self) -> None:
        """Run periodic sync task."""
        while self.running:
            try:
                await self.sync_now()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in periodic sync task: %s", str(e))
                await asyncio.sleep(60)  # Wait 1 minute before retrying
