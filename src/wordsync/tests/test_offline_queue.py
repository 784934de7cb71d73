"""Tests for the offline mutation queue."""
from datetime import datetime, timedelta, timezone

import pytest
from faker import Faker

from wordsync.models.sync_models import MutationType
from wordsync.services.offline_queue import OfflineQueue

fake = Faker()


def test_enqueue(queue: OfflineQueue, user_id: str, clock) -> None:
    """Test appending a mutation."""
    mutation = queue.enqueue(MutationType.SAVE, "42", {"item_id": "42"}, user_id=user_id)

    assert mutation.retry_count == 0
    assert mutation.created_at == clock.now()
    assert queue.size() == 1
    assert queue.has_pending_changes(user_id)
    assert queue.get(mutation.id) == mutation


def test_same_type_coalesces_to_latest_payload(queue: OfflineQueue, user_id: str, clock) -> None:
    """Test last-write-wins for repeated mutations of one kind."""
    queue.enqueue(MutationType.UPDATE_NOTES, "42", {"is_favorite": True}, user_id=user_id)
    clock.tick(seconds=1)
    queue.enqueue(MutationType.UPDATE_NOTES, "42", {"is_favorite": False}, user_id=user_id)
    clock.tick(seconds=1)
    latest = queue.enqueue(MutationType.UPDATE_NOTES, "42", {"is_favorite": True, "notes": "x"}, user_id=user_id)

    pending = queue.list_pending()
    assert len(pending) == 1
    assert pending[0].id == latest.id
    assert pending[0].payload == {"is_favorite": True, "notes": "x"}


def test_unsave_replaces_pending_save(queue: OfflineQueue, user_id: str) -> None:
    """Test that save then unsave leaves only the unsave."""
    queue.enqueue(MutationType.SAVE, "42", {"item_id": "42"}, user_id=user_id)
    queue.enqueue(MutationType.UNSAVE, "42", {}, user_id=user_id)

    pending = queue.list_pending()
    assert [m.mutation_type for m in pending] == [MutationType.UNSAVE]


def test_unsave_drops_every_pending_edit(queue: OfflineQueue, user_id: str) -> None:
    for mutation_type in (MutationType.SAVE, MutationType.UPDATE_NOTES, MutationType.RECORD_PRACTICE):
        queue.enqueue(mutation_type, "42", {}, user_id=user_id)
    queue.enqueue(MutationType.SAVE, "7", {}, user_id=user_id)

    queue.enqueue(MutationType.UNSAVE, "42", {}, user_id=user_id)

    pending = queue.list_pending()
    assert [(m.item_id, m.mutation_type) for m in pending] == [
        ("7", MutationType.SAVE),
        ("42", MutationType.UNSAVE),
    ]


def test_save_replaces_pending_unsave(queue: OfflineQueue, user_id: str) -> None:
    queue.enqueue(MutationType.UNSAVE, "42", {}, user_id=user_id)
    queue.enqueue(MutationType.SAVE, "42", {"item_id": "42"}, user_id=user_id)

    assert [m.mutation_type for m in queue.list_pending()] == [MutationType.SAVE]


def test_different_types_are_kept_in_order(queue: OfflineQueue, user_id: str, clock) -> None:
    """Test that a save stays ahead of a later notes update."""
    queue.enqueue(MutationType.SAVE, "42", {}, user_id=user_id)
    clock.tick(seconds=1)
    queue.enqueue(MutationType.UPDATE_NOTES, "42", {}, user_id=user_id)

    assert [m.mutation_type for m in queue.pending_for_item(user_id, "42")] == [
        MutationType.SAVE,
        MutationType.UPDATE_NOTES,
    ]


def test_list_pending_orders_by_creation_time(queue: OfflineQueue, user_id: str, clock) -> None:
    """Test replay order when entries were written out of order."""
    base = clock.now()
    queue.enqueue(MutationType.SAVE, "b", {}, user_id=user_id, created_at=base + timedelta(seconds=2))
    queue.enqueue(MutationType.SAVE, "a", {}, user_id=user_id, created_at=base + timedelta(seconds=1))
    queue.enqueue(MutationType.SAVE, "c", {}, user_id=user_id, created_at=base)

    assert [m.item_id for m in queue.list_pending()] == ["c", "a", "b"]


def test_list_pending_compares_instants_across_offsets(queue: OfflineQueue, user_id: str) -> None:
    """Test that replay order follows the instant, not the local clock time."""
    late = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
    early = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=5)))
    queue.enqueue(MutationType.SAVE, "late", {}, user_id=user_id, created_at=late)
    queue.enqueue(MutationType.SAVE, "early", {}, user_id=user_id, created_at=early)

    pending = queue.list_pending()
    assert [m.item_id for m in pending] == ["early", "late"]
    assert pending[0].created_at == early


def test_equal_timestamps_keep_insertion_order(queue: OfflineQueue, user_id: str) -> None:
    for item_id in ("x", "y", "z"):
        queue.enqueue(MutationType.SAVE, item_id, {}, user_id=user_id)
    assert [m.item_id for m in queue.list_pending()] == ["x", "y", "z"]


def test_list_pending_filters_by_user(queue: OfflineQueue, user_id: str) -> None:
    other = fake.uuid4()
    queue.enqueue(MutationType.SAVE, "42", {}, user_id=user_id)
    queue.enqueue(MutationType.SAVE, "42", {}, user_id=other)

    assert len(queue.list_pending()) == 2
    assert [m.user_id for m in queue.list_pending(other)] == [other]
    assert queue.size(user_id) == 1


def test_dequeue_confirmed(queue: OfflineQueue, user_id: str) -> None:
    mutation = queue.enqueue(MutationType.SAVE, "42", {}, user_id=user_id)

    assert queue.dequeue_confirmed(mutation.id) is True
    assert queue.size() == 0
    assert queue.dequeue_confirmed(mutation.id) is False


def test_mark_failed_counts_retries(queue: OfflineQueue, user_id: str) -> None:
    mutation = queue.enqueue(MutationType.SAVE, "42", {}, user_id=user_id)

    for attempt in range(1, 4):
        assert queue.mark_failed(mutation.id, "HTTP 503") is None
        assert queue.get(mutation.id).retry_count == attempt


def test_mark_failed_moves_to_dead_letters(queue: OfflineQueue, user_id: str) -> None:
    """Test that the fourth failure dead-letters the mutation exactly once."""
    mutation = queue.enqueue(MutationType.RECORD_PRACTICE, "42", {"practice_count": 1}, user_id=user_id)

    for _ in range(3):
        queue.mark_failed(mutation.id, "timeout")
    dead = queue.mark_failed(mutation.id, "timeout")

    assert dead is not None
    assert dead.mutation_id == mutation.id
    assert dead.mutation_type is MutationType.RECORD_PRACTICE
    assert dead.retry_count == 4
    assert dead.payload == {"practice_count": 1}
    assert dead.reason == "timeout"
    assert queue.get(mutation.id) is None
    assert queue.list_dead_letters() == [dead]

    assert queue.mark_failed(mutation.id, "timeout") is None
    assert len(queue.list_dead_letters(user_id)) == 1


def test_discard_dead_letter(queue: OfflineQueue, user_id: str) -> None:
    mutation = queue.enqueue(MutationType.SAVE, "42", {}, user_id=user_id)
    for _ in range(4):
        dead = queue.mark_failed(mutation.id)

    assert queue.discard_dead_letter(dead.id) is True
    assert queue.list_dead_letters() == []
    assert queue.discard_dead_letter(dead.id) is False


def test_zero_retries_dead_letters_on_first_failure(db, user_id: str) -> None:
    strict_queue = OfflineQueue(db, max_retries=0)
    mutation = strict_queue.enqueue(MutationType.SAVE, "42", {}, user_id=user_id)
    assert strict_queue.mark_failed(mutation.id) is not None


def test_clear(queue: OfflineQueue, user_id: str) -> None:
    queue.enqueue(MutationType.SAVE, "1", {}, user_id=user_id)
    queue.enqueue(MutationType.SAVE, "2", {}, user_id=user_id)

    assert queue.clear(user_id) == 2
    assert not queue.has_pending_changes()


if __name__ == "__main__":
    pytest.main([__file__])
