"""Tests for the in-memory thread state store."""

from mailtriage.engine.state import ThreadStateStore


class TestThreadStateStore:
    """Tests for ThreadStateStore."""

    def test_empty_store(self):
        store = ThreadStateStore()

        assert len(store) == 0
        assert not store.has("thread-001")
        assert store.get("thread-001") is None
        assert store.records() == []

    def test_upsert_creates_record(self):
        store = ThreadStateStore()

        record = store.upsert("thread-001", "msg-001")

        assert store.has("thread-001")
        assert "thread-001" in store
        assert record.thread_id == "thread-001"
        assert record.last_processed_email_id == "msg-001"
        assert record.clarification_rounds == 1
        assert record.updated_at.tzinfo is not None

    def test_upsert_refreshes_existing_record(self):
        store = ThreadStateStore()
        first = store.upsert("thread-001", "msg-001")
        created_at = first.updated_at

        second = store.upsert("thread-001", "msg-002")

        assert len(store) == 1
        assert second is first
        assert second.last_processed_email_id == "msg-002"
        assert second.clarification_rounds == 2
        assert second.updated_at >= created_at

    def test_threads_are_independent(self):
        store = ThreadStateStore()
        store.upsert("thread-001", "msg-001")
        store.upsert("thread-002", "msg-002")

        store.delete("thread-001")

        assert not store.has("thread-001")
        assert store.get("thread-002").last_processed_email_id == "msg-002"

    def test_delete_returns_whether_tracked(self):
        store = ThreadStateStore()
        store.upsert("thread-001", "msg-001")

        assert store.delete("thread-001") is True
        assert store.delete("thread-001") is False
        assert store.delete("never-seen") is False
        assert len(store) == 0

    def test_records_is_a_snapshot(self):
        store = ThreadStateStore()
        store.upsert("thread-001", "msg-001")

        snapshot = store.records()
        store.delete("thread-001")

        assert [r.thread_id for r in snapshot] == ["thread-001"]
        assert store.records() == []
