"""Read-only view of pending work for operators (``agqr status``)."""

from __future__ import annotations

from dataclasses import dataclass, field

from agqr.coordination.coordinator import best_work, vote_winner
from agqr.coordination.records import Group, HostAttempt
from agqr.coordination.work_store import WorkStore


@dataclass
class GroupStatus:
    group: Group
    attempts: list[HostAttempt]
    lock_holder: str | None = None

    @property
    def winner(self) -> HostAttempt | None:
        return vote_winner(self.attempts)

    @property
    def best(self) -> HostAttempt | None:
        return best_work(self.attempts)

    @property
    def valid(self) -> bool:
        """A group nobody can consolidate without manual help is invalid."""
        return self.winner is not None and self.best is not None


@dataclass
class ProgramStatus:
    program: str
    recordings: int
    groups: list[GroupStatus] = field(default_factory=list)


def group_status(store: WorkStore, group: Group) -> GroupStatus:
    return GroupStatus(group=group, attempts=store.host_attempts(group), lock_holder=store.lock_holder(group))


def pending_count(store: WorkStore) -> int:
    return sum(1 for _ in store.all_groups())


def invalid_pending_count(store: WorkStore) -> int:
    return sum(1 for group in store.all_groups() if not group_status(store, group).valid)


def program_statuses(store: WorkStore) -> list[ProgramStatus]:
    statuses = []
    for program in store.programs():
        status = ProgramStatus(program=program, recordings=len(store.consolidated_recordings(program)))
        status.groups = [group_status(store, group) for group in store.groups(program)]
        statuses.append(status)
    return statuses
