"""Test configuration."""
import os
from datetime import datetime, timedelta, UTC
from typing import Awaitable, Callable, Dict, Generator, List, Optional, Tuple

import pytest
from faker import Faker
from sqlalchemy.orm import Session

# Set test environment before any imports
os.environ["ENV"] = "test"

# Import after environment setup
from wordsync.models.base import create_db_engine, create_session_factory, init_db
from wordsync.models.progress import ProgressRecord
from wordsync.models.sync_models import StoreResponse
from wordsync.services.connectivity import ConnectivityMonitor
from wordsync.services.offline_queue import OfflineQueue
from wordsync.services.progress_service import ProgressService

fake = Faker()

START = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def tick(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeStore:
    """Remote store double with scripted answers per item."""

    def __init__(self):
        self.calls: List[Tuple[str, str, Optional[ProgressRecord]]] = []
        self.responses: Dict[str, List[StoreResponse]] = {}
        self.hooks: Dict[str, Callable[[], Awaitable[None]]] = {}

    def script(self, item_id: str, *responses: StoreResponse) -> None:
        self.responses.setdefault(item_id, []).extend(responses)

    async def _answer(self, item_id: str) -> StoreResponse:
        hook = self.hooks.get(item_id)
        if hook is not None:
            await hook()
        scripted = self.responses.get(item_id)
        return scripted.pop(0) if scripted else StoreResponse.ok()

    async def upsert_progress(self, record: ProgressRecord) -> StoreResponse:
        self.calls.append(("upsert", record.item_id, record))
        return await self._answer(record.item_id)

    async def delete_progress(self, user_id: str, item_id: str) -> StoreResponse:
        self.calls.append(("delete", item_id, None))
        return await self._answer(item_id)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh in-memory database session for each test."""
    engine = create_db_engine("sqlite://", echo=False)
    init_db(engine)
    db = create_session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def user_id() -> str:
    return fake.uuid4()


@pytest.fixture
def queue(db: Session, clock: FixedClock) -> OfflineQueue:
    """Create an offline queue instance."""
    return OfflineQueue(db, max_retries=3, now=clock.now)


@pytest.fixture
def progress_service(db: Session, user_id: str, queue: OfflineQueue, clock: FixedClock) -> ProgressService:
    """Create a progress service for the test learner."""
    return ProgressService(db, user_id, queue=queue, clock=clock)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def connectivity(clock: FixedClock) -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True, clock=clock)

