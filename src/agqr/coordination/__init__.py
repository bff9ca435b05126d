"""Distributed consolidation of per-host recordings in a shared bucket."""

from agqr.coordination.coordinator import (
    Coordinator,
    CoordinatorReport,
    GroupOutcome,
    best_work,
    vote_winner,
)
from agqr.coordination.index import ListingIndex
from agqr.coordination.records import ConsolidatedRecording, Group, HostAttempt
from agqr.coordination.status import (
    GroupStatus,
    ProgramStatus,
    invalid_pending_count,
    pending_count,
    program_statuses,
)
from agqr.coordination.work_store import WorkStore

__all__ = [
    "Coordinator",
    "CoordinatorReport",
    "GroupOutcome",
    "best_work",
    "vote_winner",
    "ListingIndex",
    "ConsolidatedRecording",
    "Group",
    "HostAttempt",
    "WorkStore",
    "GroupStatus",
    "ProgramStatus",
    "pending_count",
    "invalid_pending_count",
    "program_statuses",
]
