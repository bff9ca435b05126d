"""Tests for the operator status view."""

from agqr.coordination.status import invalid_pending_count, pending_count, program_statuses
from agqr.coordination.work_store import WorkStore
from tests._support.work_layout import TS, put_host


class TestStatus:
    def test_counts(self, storage):
        put_host(storage, "h1", vote=1)
        put_host(storage, "h1", ts="2024-01-02_120000")
        put_host(storage, "h1", program="Bar", vote=3, meta=False)
        store = WorkStore(storage)

        assert pending_count(store) == 3
        # no vote, and no complete host
        assert invalid_pending_count(store) == 2

    def test_empty_bucket(self, storage):
        store = WorkStore(storage)
        assert pending_count(store) == 0
        assert invalid_pending_count(store) == 0
        assert program_statuses(store) == []

    def test_program_statuses(self, storage):
        put_host(storage, "h1", vote=1, tries=2)
        put_host(storage, "h2", vote=5, tries=0)
        storage.write("Foo/rec/2023-12-25_120000.json", "{}")
        storage.write(f"Foo/work/{TS}/work-mark", "h2")

        [status] = program_statuses(WorkStore(storage))

        assert status.program == "Foo"
        assert status.recordings == 1
        [group] = status.groups
        assert group.winner.host == "h2"
        assert group.best.host == "h2"
        assert group.lock_holder == "h2"
        assert group.valid
