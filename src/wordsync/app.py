"""Application wiring: one learner context per user session."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from wordsync.config import Settings, settings as default_settings
from wordsync.models.base import create_db_engine, create_session_factory, init_db
from wordsync.services.connectivity import Clock, ConnectivityMonitor, ConnectivityProbe, SystemClock
from wordsync.services.evaluation_service import EvaluationService, Evaluator, HttpEvaluator
from wordsync.services.offline_queue import OfflineQueue
from wordsync.services.practice_service import PracticeService
from wordsync.services.progress_service import ProgressService
from wordsync.services.remote_store import RemoteStore, RestRemoteStore
from wordsync.services.scheduler_service import SyncScheduler
from wordsync.services.sync_service import Synchronizer


@dataclass
class LearnerContext:
    """Everything one learner's session needs, passed around explicitly."""
    user_id: str
    db: Session
    queue: OfflineQueue
    progress: ProgressService
    practice: PracticeService
    synchronizer: Synchronizer
    connectivity: ConnectivityProbe

    def close(self) -> None:
        self.db.close()


def build_context(
    db: Session,
    user_id: str,
    store: RemoteStore,
    connectivity: Optional[ConnectivityProbe] = None,
    evaluator: Optional[Evaluator] = None,
    clock: Optional[Clock] = None,
    settings: Optional[Settings] = None,
) -> LearnerContext:
    """Wire the services for one learner."""
    settings = settings or default_settings
    clock = clock or SystemClock()
    connectivity = connectivity or ConnectivityMonitor(clock=clock)
    queue = OfflineQueue(db, max_retries=settings.sync.max_retries, now=clock.now)
    progress = ProgressService(db, user_id, queue=queue, clock=clock, learning=settings.learning)
    evaluation = EvaluationService(evaluator, config=settings.evaluation)
    return LearnerContext(
        user_id=user_id,
        db=db,
        queue=queue,
        progress=progress,
        practice=PracticeService(progress, evaluation),
        synchronizer=Synchronizer(progress, store, connectivity, config=settings.sync),
        connectivity=connectivity,
    )


class WordSyncApp:
    """Main application class: local store plus background sync for one learner."""

    def __init__(self, user_id: str, settings: Optional[Settings] = None):
        """Initialize the application."""
        self.user_id = user_id
        self.settings = settings or default_settings
        self.engine: Optional[Engine] = None
        self.session_factory: Optional[sessionmaker] = None
        self.context: Optional[LearnerContext] = None
        self.scheduler: Optional[SyncScheduler] = None
        self.running = False
        self.logger = logging.getLogger(__name__)

    def _build_store(self) -> RestRemoteStore:
        if not self.settings.sync.remote_url:
            raise ValueError("REMOTE_STORE_URL is required to run the sync service")
        return RestRemoteStore(self.settings.sync.remote_url, token=self.settings.sync.remote_token)

    def _build_evaluator(self) -> Optional[HttpEvaluator]:
        if not self.settings.evaluation.url:
            self.logger.info("No EVALUATOR_URL configured, practice uses local scoring")
            return None
        return HttpEvaluator(self.settings.evaluation.url, token=self.settings.evaluation.token)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        store = self._build_store()
        self.engine = create_db_engine(self.settings.database.url, self.settings.database.echo)
        init_db(self.engine)
        self.session_factory = create_session_factory(self.engine)
        self.logger.info("Database initialized")

        self.context = build_context(
            self.session_factory(),
            self.user_id,
            store=store,
            evaluator=self._build_evaluator(),
            settings=self.settings,
        )
        self.scheduler = SyncScheduler(self.context.synchronizer, self.settings.sync.interval_seconds)
        await self.scheduler.start()
        self.running = True
        self.logger.info(
            "Sync service started for user %s with %d pending mutation(s)",
            self.user_id,
            self.context.queue.size(self.user_id),
        )

    async def stop(self) -> None:
        """Stop the application."""
        if not self.running:
            return

        self.running = False
        if self.scheduler:
            await self.scheduler.stop()
        if self.context:
            store = self.context.synchronizer.store
            if isinstance(store, RestRemoteStore):
                await store.aclose()
            evaluator = self.context.practice.evaluation_service.evaluator
            if isinstance(evaluator, HttpEvaluator):
                await evaluator.aclose()
            self.context.close()
        if self.engine:
            self.engine.dispose()
        self.logger.info("Sync service stopped")
