"""
Leaderless consolidation of per-host recordings.

Every host runs the same pass over the shared bucket; no message passing
happens beyond what is visible in the store.

Per group::

    host attempts ──► quiescent? ──► any host? ──► lock holder?
                                                   │
                          ┌── other host ──────────┤
                          │   (skip: locked)       ├── self (own crash): resume
                          │                        └── none: vote winner == self?
                          ▼                                   │
                        skip                                  ▼
                                    write lock ──► read back ──► consolidated already?
                                                                  │
                                                 best work ◄──────┘
                                                     │
                                           extract ──► dispose ──► release lock

Guardrails:
    - The lock is an advisory marker, not a compare-and-set. Two hosts that
      both believe they won can both write it; the read-back narrows that
      window but cannot close it. A second consolidation of the same group
      trips the ``rec/<ts>.json`` guard unless both run fully in parallel.
    - A lock left behind by a crashed host is never expired. The group stays
      blocked for other hosts until someone deletes ``work-mark``; the host
      that wrote it resumes on its next pass.
    - Hosts without ``meta.json`` never take part in the vote or the best
      work selection and are always archived, never deleted.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from agqr.coordination.index import ListingIndex
from agqr.coordination.records import Group, HostAttempt
from agqr.coordination.work_store import WorkStore
from agqr.core.errors import AlreadyConsolidatedError, LockContentionError
from agqr.core.logging import LogContext, get_logger
from agqr.core.settings import AgqrSettings
from agqr.storage.base import Storage
from agqr.storage.s3 import S3Storage

logger = get_logger(__name__)


class GroupOutcome(str, Enum):
    CONSOLIDATED = "consolidated"
    NOT_QUIESCENT = "not_quiescent"
    NO_HOSTS = "no_hosts"
    LOCKED = "locked"
    NO_LEADER = "no_leader"
    LOST_VOTE = "lost_vote"
    NO_BEST_WORK = "no_best_work"
    ALREADY_CONSOLIDATED = "already_consolidated"
    FAILED = "failed"


@dataclass
class CoordinatorReport:
    """Result of one coordinator pass."""

    outcomes: dict[str, GroupOutcome] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    consolidated: dict[str, list[str]] = field(default_factory=dict)
    index_appended: dict[str, int] = field(default_factory=dict)

    @property
    def failed(self) -> list[str]:
        return list(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors

    def count(self, outcome: GroupOutcome) -> int:
        return sum(1 for value in self.outcomes.values() if value is outcome)


def best_work(attempts: Sequence[HostAttempt]) -> HostAttempt | None:
    """Lowest error count among complete attempts; first one wins a tie."""
    complete = [attempt for attempt in attempts if attempt.complete]
    return min(complete, key=lambda attempt: attempt.error_count, default=None)


def vote_winner(attempts: Sequence[HostAttempt]) -> HostAttempt | None:
    """Highest vote; equal votes go to the lexicographically greatest host."""
    eligible = [attempt for attempt in attempts if attempt.complete and attempt.vote >= 0]
    return max(eligible, key=lambda attempt: (attempt.vote, attempt.host), default=None)


class Coordinator:
    """One host's view of the coordination protocol."""

    def __init__(
        self,
        store: WorkStore,
        hostname: str,
        *,
        quiescence_seconds: float = 600.0,
        index: ListingIndex | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.hostname = hostname
        self.quiescence_seconds = quiescence_seconds
        self.index = index or ListingIndex(store)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: AgqrSettings, storage: Storage | None = None) -> Coordinator:
        if storage is None:
            storage = S3Storage.from_settings(settings)
        store = WorkStore(storage, settings.s3_prefix)
        return cls(
            store,
            settings.hostname,
            quiescence_seconds=settings.quiescence_seconds,
            index=ListingIndex(store, settings.url_base),
        )

    # ── Pass ─────────────────────────────────────────────────────

    def run(self) -> CoordinatorReport:
        report = CoordinatorReport()
        logger.info("coordinator_started", host=self.hostname)

        for group in list(self.store.all_groups()):
            with LogContext(group=str(group)):
                try:
                    outcome = self.run_group(group)
                except Exception as exc:
                    logger.exception("group_failed", error=repr(exc))
                    report.errors[str(group)] = repr(exc)
                    outcome = GroupOutcome.FAILED

            report.outcomes[str(group)] = outcome
            if outcome is GroupOutcome.CONSOLIDATED:
                report.consolidated.setdefault(group.program, []).append(group.timestamp)

        for program in report.consolidated:
            try:
                report.index_appended[program] = self.index.update(program)
            except Exception as exc:
                logger.exception("index_update_failed", program=program, error=repr(exc))
                report.errors[f"{program}/index.html"] = repr(exc)

        logger.info(
            "coordinator_finished",
            groups=len(report.outcomes),
            consolidated=report.count(GroupOutcome.CONSOLIDATED),
            failed=len(report.errors),
        )
        return report

    def run_group(self, group: Group) -> GroupOutcome:
        """Consolidate *group* if this host is the one to do it.

        Exceptions from the store propagate after the lock was released.
        """
        attempts = self.store.host_attempts(group)

        if not self._quiescent(attempts):
            logger.info("group_skipped", reason="not_quiescent")
            return GroupOutcome.NOT_QUIESCENT

        if not attempts:
            logger.warning("group_skipped", reason="no_hosts")
            return GroupOutcome.NO_HOSTS

        try:
            holder = self.store.lock_holder(group)
            if holder is None:
                winner = vote_winner(attempts)
                if winner is None:
                    logger.warning("group_skipped", reason="no_leader")
                    return GroupOutcome.NO_LEADER
                if winner.host != self.hostname:
                    logger.info("group_skipped", reason="lost_vote", winner=winner.host, vote=winner.vote)
                    return GroupOutcome.LOST_VOTE
            elif holder != self.hostname:
                raise LockContentionError(holder).with_context(group=str(group), host=holder)
            else:
                logger.warning("group_resuming_own_lock")

            self._acquire(group)
        except LockContentionError as exc:
            logger.info("group_skipped", reason="locked", **exc.to_dict())
            return GroupOutcome.LOCKED

        try:
            return self._consolidate(group, attempts)
        except AlreadyConsolidatedError as exc:
            logger.warning("group_skipped", reason="already_consolidated", **exc.to_dict())
            return GroupOutcome.ALREADY_CONSOLIDATED
        finally:
            self.store.declare_work_finish(group)

    def _quiescent(self, attempts: Sequence[HostAttempt]) -> bool:
        stamps = [a.meta_modified for a in attempts if a.meta_modified is not None]
        if not stamps:
            stamps = [a.last_modified for a in attempts if a.last_modified is not None]
        if not stamps:
            return True
        age = self._clock() - max(stamps).timestamp()
        return age >= self.quiescence_seconds

    def _acquire(self, group: Group) -> None:
        self.store.declare_work(group, self.hostname)
        try:
            holder = self.store.lock_holder(group)
        except Exception:
            self.store.declare_work_finish(group)
            raise
        if holder != self.hostname:
            raise LockContentionError(holder or "nobody").with_context(group=str(group), host=holder)

    def _consolidate(self, group: Group, attempts: Sequence[HostAttempt]) -> GroupOutcome:
        if self.store.is_consolidated(group):
            raise AlreadyConsolidatedError(f"{group} is already consolidated").with_context(group=str(group))

        best = best_work(attempts)
        if best is None:
            logger.warning("group_skipped", reason="no_best_work")
            return GroupOutcome.NO_BEST_WORK

        logger.info("best_work_selected", host=best.host, error_count=best.error_count)
        self.store.extract(group, best)
        self._dispose(group, attempts, best)
        logger.info("group_consolidated", host=best.host)
        return GroupOutcome.CONSOLIDATED

    def _dispose(self, group: Group, attempts: Sequence[HostAttempt], best: HostAttempt) -> None:
        if best.error_count > 0:
            logger.info("keeping_all_host_work", error_count=best.error_count)
            for attempt in attempts:
                self.store.relocate(attempt, group.archive_prefix(attempt.host))
            return

        for attempt in attempts:
            if attempt is best:
                self.store.relocate(attempt, group.archive_prefix(attempt.host), skip=attempt.promoted_keys)
            elif attempt.complete:
                self.store.destroy(attempt)
            else:
                self.store.relocate(attempt, group.archive_prefix(attempt.host))
