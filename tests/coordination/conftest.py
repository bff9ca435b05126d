"""Coordinator fixtures over a LocalStorage bucket."""

import time

import pytest

from agqr.coordination.coordinator import Coordinator
from agqr.coordination.index import ListingIndex
from agqr.coordination.work_store import WorkStore


@pytest.fixture
def make_coordinator():
    def make(storage, hostname, prefix="", quiescence_seconds=600.0, clock=None):
        store = WorkStore(storage, prefix)
        return Coordinator(
            store,
            hostname,
            quiescence_seconds=quiescence_seconds,
            index=ListingIndex(store, "http://example.com"),
            # an hour from now, so freshly written work counts as settled
            clock=clock or (lambda: time.time() + 3600),
        )

    return make
