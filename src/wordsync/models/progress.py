"""Progress record model: the per-learner, per-item learning state."""
import uuid
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, Optional

from wordsync.errors import InvariantViolation


class Strength(str, Enum):
    """Proficiency tier of a vocabulary item, ordered from weakest to strongest."""
    NEW = "new"
    LEARNING = "learning"
    FAMILIAR = "familiar"
    MASTERED = "mastered"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def promoted(self) -> "Strength":
        """Next tier up, or the same tier if already at the top."""
        return _TIER_ORDER[min(self.rank + 1, len(_TIER_ORDER) - 1)]

    def demoted(self) -> "Strength":
        """Next tier down, or the same tier if already at the bottom."""
        return _TIER_ORDER[max(self.rank - 1, 0)]


_TIER_ORDER = [Strength.NEW, Strength.LEARNING, Strength.FAMILIAR, Strength.MASTERED]


class SyncState(str, Enum):
    """Divergence between the local record and the remote store."""
    SYNCED = "synced"
    PENDING_CREATE = "pendingCreate"
    PENDING_UPDATE = "pendingUpdate"
    PENDING_DELETE = "pendingDelete"


@dataclass(frozen=True)
class VocabularyItem:
    """A vocabulary item owned by the content catalogue. Never mutated here."""
    id: str
    text: str
    definition: str = ""
    difficulty: str = ""
    category: str = ""


@dataclass
class ProgressRecord:
    """Learning state of one item for one learner."""
    id: str
    user_id: str
    item_id: str
    saved_at: datetime
    strength: Strength = Strength.NEW
    practice_count: int = 0
    correct_count: int = 0
    last_practiced_at: Optional[datetime] = None
    next_due_at: Optional[datetime] = None
    is_favorite: bool = False
    notes: Optional[str] = None
    sync_state: SyncState = SyncState.PENDING_CREATE

    @property
    def success_rate(self) -> float:
        if self.practice_count == 0:
            return 0.0
        return self.correct_count / self.practice_count

    def is_due(self, now: datetime) -> bool:
        """Unscheduled records are always due."""
        return self.next_due_at is None or self.next_due_at <= now


def create(user_id: str, item_id: str, now: Optional[datetime] = None) -> ProgressRecord:
    """Create the record for a freshly saved item."""
    return ProgressRecord(
        id=uuid.uuid4().hex,
        user_id=user_id,
        item_id=item_id,
        saved_at=now or datetime.now(UTC),
        strength=Strength.NEW,
        practice_count=0,
        correct_count=0,
        next_due_at=None,
        sync_state=SyncState.PENDING_CREATE,
    )


def validate(record: ProgressRecord) -> None:
    """Raise InvariantViolation if the record is inconsistent."""
    if not isinstance(record.strength, Strength):
        raise InvariantViolation("strength", f"unknown tier {record.strength!r}")
    if not isinstance(record.sync_state, SyncState):
        raise InvariantViolation("sync_state", f"unknown state {record.sync_state!r}")
    if record.practice_count < 0 or record.correct_count < 0:
        raise InvariantViolation("practice_count", "counts must be non-negative")
    if record.correct_count > record.practice_count:
        raise InvariantViolation(
            "correct_count",
            f"{record.correct_count} correct out of {record.practice_count} attempts",
        )
    if record.next_due_at is None and record.practice_count > 0:
        raise InvariantViolation("next_due_at", "practiced record has no due date")
    if record.next_due_at is not None and record.practice_count == 0:
        raise InvariantViolation("next_due_at", "unpracticed record is already scheduled")


def _dump_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _load_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def serialize_record(record: ProgressRecord) -> Dict[str, Any]:
    """Convert a record to a JSON-safe dictionary."""
    return {
        "id": record.id,
        "user_id": record.user_id,
        "item_id": record.item_id,
        "strength": record.strength.value,
        "practice_count": record.practice_count,
        "correct_count": record.correct_count,
        "last_practiced_at": _dump_time(record.last_practiced_at),
        "next_due_at": _dump_time(record.next_due_at),
        "saved_at": _dump_time(record.saved_at),
        "is_favorite": record.is_favorite,
        "notes": record.notes,
        "sync_state": record.sync_state.value,
    }


def deserialize_record(data: Dict[str, Any]) -> ProgressRecord:
    """Build a record from serialize_record() output and validate it."""
    try:
        record = ProgressRecord(
            id=data["id"],
            user_id=data["user_id"],
            item_id=data["item_id"],
            strength=Strength(data.get("strength", Strength.NEW.value)),
            practice_count=int(data.get("practice_count", 0)),
            correct_count=int(data.get("correct_count", 0)),
            last_practiced_at=_load_time(data.get("last_practiced_at")),
            next_due_at=_load_time(data.get("next_due_at")),
            saved_at=_load_time(data.get("saved_at")) or datetime.now(UTC),
            is_favorite=bool(data.get("is_favorite", False)),
            notes=data.get("notes"),
            sync_state=SyncState(data.get("sync_state", SyncState.SYNCED.value)),
        )
    except KeyError as e:
        raise InvariantViolation(str(e.args[0]), "missing field") from e
    except (TypeError, ValueError) as e:
        raise InvariantViolation("record", str(e)) from e
    validate(record)
    return record
