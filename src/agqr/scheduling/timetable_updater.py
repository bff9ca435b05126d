"""Periodically refresh the Schedule and report changes."""

from __future__ import annotations

import random
import time
from collections.abc import Callable

from agqr.core.errors import AgqrError
from agqr.core.logging import get_logger
from agqr.scheduling.loop import EventKind, EventLoop, LoopEvent
from agqr.scheduling.protocol import WorkerState
from agqr.timetable.models import Schedule
from agqr.timetable.source import TimetableSource

logger = get_logger(__name__)

UpdateCallback = Callable[[Schedule], None]


class TimetableUpdater:
    """Fetch the timetable on a jittered timer; call ``on_update`` on change.

    A failed fetch never stops the worker: the previous schedule stays in
    effect and the next tick (freshly jittered) tries again.
    """

    name = "timetable_updater"

    def __init__(
        self,
        source: TimetableSource,
        *,
        interval: float = 1800.0,
        jitter: float = 120.0,
        initial_delay: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        self._source = source
        self._interval = interval
        self._jitter = jitter
        self._initial_delay = initial_delay
        self._on_update: UpdateCallback | None = None
        self._schedule: Schedule | None = None
        self._loop = EventLoop(self.name, self._dispatch, clock=clock)

    def on_update(self, callback: UpdateCallback) -> None:
        self._on_update = callback

    @property
    def schedule(self) -> Schedule | None:
        return self._schedule

    # ── Worker protocol ──────────────────────────────────────────

    def start(self) -> None:
        if self._loop.started:
            return
        self._loop.arm_after(self._initial_delay)
        self._loop.start()

    def shutdown(self, immediate: bool = False) -> None:
        if not self.running:
            return
        self._loop.stop(immediate)

    def join(self, timeout: float | None = None) -> None:
        self._loop.join(timeout)

    @property
    def running(self) -> bool:
        return self._loop.alive

    @property
    def state(self) -> WorkerState:
        return self._loop.state

    @property
    def error(self) -> BaseException | None:
        return self._loop.error

    # ── Loop ─────────────────────────────────────────────────────

    def _dispatch(self, event: LoopEvent) -> None:
        if event.kind is not EventKind.TIMER:
            return
        try:
            self.update()
        finally:
            delay = self._interval + random.uniform(0, self._jitter)
            self._loop.arm_after(delay)
            logger.info("timetable_next_update", seconds=round(delay, 1))

    def update(self) -> bool:
        """Fetch once. Returns True when the schedule changed."""
        logger.info("timetable_updating")
        previous = self._schedule
        try:
            schedule = self._source.fetch()
        except AgqrError as exc:
            logger.warning("timetable_update_failed", **exc.to_dict())
            return False
        except Exception as exc:
            logger.exception("timetable_update_failed", error=repr(exc))
            return False

        logger.info("timetable_loaded", programs=schedule.programs)
        if schedule == previous:
            return False

        self._schedule = schedule
        logger.info("timetable_changed")
        if self._on_update is not None:
            try:
                self._on_update(schedule)
            except Exception as exc:
                logger.exception("timetable_hook_failed", error=repr(exc))
        return True
