"""
Tests for tourneysync.store.queue module.
"""

import pytest

from tourneysync.core.models import PERMANENT_FAILURE_PREFIX, ChangeOperation
from tourneysync.store.database import StoreUnavailableError
from tourneysync.store.queue import (
    MAX_RETRY_ATTEMPTS,
    MAX_RETRY_DELAY_MS,
    ChangeQueue,
    retry_delay,
)


class TestRetryDelay:
    """Tests for the exponential backoff schedule."""

    @pytest.mark.parametrize(
        "attempts, expected",
        [(0, 1000), (1, 2000), (3, 8000), (4, 16000), (5, 30000), (10, 30000)],
    )
    def test_schedule(self, attempts: int, expected: int) -> None:
        assert retry_delay(attempts) == expected

    def test_negative_attempts_clamped(self) -> None:
        assert retry_delay(-3) == 1000

    def test_never_exceeds_cap(self) -> None:
        assert max(retry_delay(n) for n in range(50)) == MAX_RETRY_DELAY_MS


class TestChangeQueue:
    """Tests for ChangeQueue."""

    def test_enqueue_and_get(self, queue: ChangeQueue) -> None:
        entry_id = queue.enqueue("tournaments", None, 1, ChangeOperation.INSERT, {"name": "Open"})

        entry = queue.get(entry_id)
        assert entry is not None
        assert entry.table == "tournaments"
        assert entry.record_id is None
        assert entry.local_id == 1
        assert entry.operation is ChangeOperation.INSERT
        assert entry.payload == {"name": "Open"}
        assert entry.attempts == 0
        assert entry.last_error is None

    def test_accepts_operation_names(self, queue: ChangeQueue) -> None:
        entry_id = queue.enqueue("rounds", "r-1", 2, "update", {"status": "active"})
        assert queue.get(entry_id).operation is ChangeOperation.UPDATE

    def test_fifo_order(self, queue: ChangeQueue) -> None:
        ids = [
            queue.enqueue("matches", None, n, ChangeOperation.INSERT, {"n": n}) for n in range(5)
        ]
        assert [entry.id for entry in queue.list_pending()] == ids

    def test_list_pending_for_table(self, queue: ChangeQueue) -> None:
        queue.enqueue("matches", None, 1, ChangeOperation.INSERT, {})
        queue.enqueue("rounds", None, 2, ChangeOperation.INSERT, {})
        queue.enqueue("matches", None, 3, ChangeOperation.INSERT, {})

        pending = queue.list_pending_for_table("matches")
        assert [entry.local_id for entry in pending] == [1, 3]

    def test_dequeue(self, queue: ChangeQueue) -> None:
        entry_id = queue.enqueue("rounds", "r-1", 1, ChangeOperation.DELETE, {})
        queue.dequeue(entry_id)
        assert queue.get(entry_id) is None
        assert queue.count() == 0

    def test_mark_failed_increments(self, queue: ChangeQueue) -> None:
        entry_id = queue.enqueue("rounds", "r-1", 1, ChangeOperation.UPDATE, {})

        assert queue.mark_failed(entry_id, "timeout") is True

        entry = queue.get(entry_id)
        assert entry.attempts == 1
        assert entry.last_error == "timeout"
        assert entry.is_permanent_failure is False

    def test_retry_cap(self, queue: ChangeQueue) -> None:
        entry_id = queue.enqueue("rounds", "r-1", 1, ChangeOperation.UPDATE, {})

        results = [queue.mark_failed(entry_id, "boom") for _ in range(MAX_RETRY_ATTEMPTS)]

        assert results == [True] * (MAX_RETRY_ATTEMPTS - 1) + [False]
        entry = queue.get(entry_id)
        assert entry.attempts == MAX_RETRY_ATTEMPTS
        assert entry.last_error == f"{PERMANENT_FAILURE_PREFIX} boom"
        assert entry.is_permanent_failure is True
        assert queue.has_retryable() is False

    def test_mark_failed_unknown_entry(self, queue: ChangeQueue) -> None:
        assert queue.mark_failed(999, "missing") is False

    def test_failed_entries_are_kept(self, queue: ChangeQueue) -> None:
        failing = queue.enqueue("rounds", "r-1", 1, ChangeOperation.UPDATE, {})
        healthy = queue.enqueue("rounds", "r-2", 2, ChangeOperation.UPDATE, {})
        for _ in range(MAX_RETRY_ATTEMPTS):
            queue.mark_failed(failing, "boom")

        assert [entry.id for entry in queue.list_failed()] == [failing]
        assert queue.count() == 2
        assert queue.has_retryable() is True

        assert queue.clear_failed() == 1
        assert [entry.id for entry in queue.list_pending()] == [healthy]

    def test_clear_failed_when_none(self, queue: ChangeQueue) -> None:
        queue.enqueue("rounds", "r-1", 1, ChangeOperation.UPDATE, {})
        assert queue.clear_failed() == 0

    def test_custom_max_attempts(self, database) -> None:
        strict = ChangeQueue(database, max_attempts=1)
        entry_id = strict.enqueue("rounds", "r-1", 1, ChangeOperation.UPDATE, {})
        assert strict.mark_failed(entry_id, "nope") is False

    def test_pending_for_record(self, queue: ChangeQueue) -> None:
        queue.enqueue("matches", None, 7, ChangeOperation.INSERT, {})
        queue.enqueue("matches", None, 7, ChangeOperation.UPDATE, {})
        queue.enqueue("matches", None, 8, ChangeOperation.INSERT, {})

        assert queue.pending_for_record("matches", 7) == 2
        assert queue.pending_for_record("matches", 9) == 0

    def test_has_pending_delete(self, queue: ChangeQueue) -> None:
        queue.enqueue("rounds", "r-1", 1, ChangeOperation.UPDATE, {})
        delete_id = queue.enqueue("rounds", "r-2", 2, ChangeOperation.DELETE, {})

        assert queue.has_pending_delete("rounds", "r-1") is False
        assert queue.has_pending_delete("rounds", "r-2") is True
        assert queue.has_pending_delete("matches", "r-2") is False

        for _ in range(MAX_RETRY_ATTEMPTS):
            queue.mark_failed(delete_id, "gone")
        assert queue.has_pending_delete("rounds", "r-2") is False

    def test_assign_record_id_backfills_later_entries(self, queue: ChangeQueue) -> None:
        insert_id = queue.enqueue("matches", None, 7, ChangeOperation.INSERT, {})
        update_id = queue.enqueue("matches", None, 7, ChangeOperation.UPDATE, {"a": 1})
        other_id = queue.enqueue("matches", None, 8, ChangeOperation.UPDATE, {})

        assert queue.assign_record_id("matches", 7, "srv-7") == 1

        assert queue.get(insert_id).record_id is None
        assert queue.get(update_id).record_id == "srv-7"
        assert queue.get(other_id).record_id is None

    def test_entry_to_dict(self, queue: ChangeQueue) -> None:
        entry_id = queue.enqueue("users", "u-1", 3, ChangeOperation.UPDATE, {"name": "Ada"})
        data = queue.get(entry_id).to_dict()
        assert data["operation"] == "update"
        assert data["payload"] == {"name": "Ada"}

    def test_closed_database(self, database, queue: ChangeQueue) -> None:
        database.close()
        with pytest.raises(StoreUnavailableError):
            queue.enqueue("rounds", None, 1, ChangeOperation.INSERT, {})
