"""Models for offline queue and synchronization data."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from wordsync.models.progress import ProgressRecord


class MutationType(Enum):
    """Kinds of write intents recorded while changes are not yet synced."""
    SAVE = "save"
    UNSAVE = "unsave"
    UPDATE_NOTES = "updateNotes"
    RECORD_PRACTICE = "recordPractice"


@dataclass
class QueuedMutation:
    """A write intent waiting for remote acknowledgement."""
    id: str
    mutation_type: MutationType
    user_id: str
    item_id: str
    payload: Dict[str, Any]
    created_at: datetime
    retry_count: int = 0


@dataclass
class DeadLetter:
    """A mutation that exhausted its retries."""
    id: str
    mutation_id: str
    mutation_type: MutationType
    user_id: str
    item_id: str
    payload: Dict[str, Any]
    created_at: datetime
    failed_at: datetime
    retry_count: int
    reason: Optional[str] = None


class StoreStatus(Enum):
    """Result class of a remote store call."""
    OK = "ok"
    CONFLICT = "conflict"
    TRANSIENT = "transient"


@dataclass
class StoreResponse:
    """Answer of the remote store. CONFLICT carries the server's record."""
    status: StoreStatus
    record: Optional[ProgressRecord] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, record: Optional[ProgressRecord] = None) -> "StoreResponse":
        return cls(StoreStatus.OK, record)

    @classmethod
    def conflict(cls, record: ProgressRecord) -> "StoreResponse":
        return cls(StoreStatus.CONFLICT, record)

    @classmethod
    def transient(cls, detail: str) -> "StoreResponse":
        return cls(StoreStatus.TRANSIENT, detail=detail)


@dataclass
class SyncReport:
    """Outcome of one sync run."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    attempted: int = 0
    synced: int = 0
    conflicts_resolved: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    dead_letters: List[DeadLetter] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return bool(self.dead_letters)
