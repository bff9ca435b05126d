"""
Scheduler: composes the three workers and maps OS signals onto them.

Wiring
──────
    TimetableUpdater ──on_update──► RecorderInvoker.set_schedule
    RecorderInvoker  ──on_start───► title_setter("agqr: (<ts>) '<title>'")
    RecorderInvoker  ──on_complete► CleanupInvoker.request

Signals
───────
    SIGINT / SIGTERM  1st → STOP       graceful: children keep recording
                      2nd → TERMINATE  immediate: children are terminated
                      3rd → FORCE_EXIT exit_fn(1) without waiting
    SIGHUP               → RESTART     graceful stop + spawn a fresh instance

Signal handlers only count and ``put`` a ControlEvent; ``supervise()`` on
the main thread performs the reaction. Stop and terminate run on helper
threads so the main thread is free to serve the next signal while the
workers drain.
"""

from __future__ import annotations

import os
import queue
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Sequence
from enum import Enum
from zoneinfo import ZoneInfo

from agqr.core.logging import get_logger
from agqr.core.settings import AgqrSettings
from agqr.scheduling.cleanup_invoker import CleanupInvoker
from agqr.scheduling.protocol import Worker
from agqr.scheduling.recorder_invoker import RecorderInvoker
from agqr.scheduling.timetable_updater import TimetableUpdater
from agqr.timetable.models import Program, Schedule
from agqr.timetable.source import DummyTimetableSource, HttpTimetableSource, TimetableSource

logger = get_logger(__name__)


class ControlEvent(str, Enum):
    STOP = "stop"
    TERMINATE = "terminate"
    FORCE_EXIT = "force_exit"
    RESTART = "restart"


class ShutdownMode(str, Enum):
    GRACEFUL = "graceful"
    IMMEDIATE = "immediate"


def _respawn(argv: Sequence[str]) -> None:
    subprocess.Popen(list(argv))


class Scheduler:
    """Top-level process object for ``agqr run``."""

    def __init__(
        self,
        updater: TimetableUpdater,
        recorder: RecorderInvoker,
        cleanup: CleanupInvoker,
        *,
        title_setter: Callable[[str], None] | None = None,
        exit_fn: Callable[[int], None] = os._exit,
        respawn: Callable[[Sequence[str]], None] = _respawn,
        poll_interval: float = 0.5,
    ):
        self.updater = updater
        self.recorder = recorder
        self.cleanup = cleanup
        self._title_setter = title_setter
        self._exit_fn = exit_fn
        self._respawn = respawn
        self._poll_interval = poll_interval

        self._lock = threading.Lock()
        self._started = False
        self._mode: ShutdownMode | None = None

        self._control: queue.SimpleQueue[ControlEvent] = queue.SimpleQueue()
        self._stop_signals = 0

    @classmethod
    def from_settings(
        cls,
        settings: AgqrSettings,
        source: TimetableSource | None = None,
        **kwargs,
    ) -> Scheduler:
        """Build the three workers from settings."""
        log_dir = settings.log_dir
        log_dir.mkdir(parents=True, exist_ok=True)

        if source is None:
            if settings.dummy_timetable:
                source = DummyTimetableSource()
            else:
                source = HttpTimetableSource(settings.timetable_url)

        updater = TimetableUpdater(
            source,
            interval=settings.timetable_interval,
            jitter=settings.timetable_jitter,
        )
        recorder = RecorderInvoker(
            settings.recorder_command,
            log_dir,
            lookahead=settings.lookahead,
            lead_seconds=settings.lead_seconds,
            timezone=ZoneInfo(settings.timezone),
        )
        cleanup = CleanupInvoker(
            settings.cleanup_command,
            log_dir,
            margin=settings.cleanup_margin,
            jitter=settings.cleanup_jitter,
        )
        return cls(updater, recorder, cleanup, **kwargs)

    @property
    def workers(self) -> tuple[Worker, ...]:
        return (self.updater, self.cleanup, self.recorder)

    @property
    def running(self) -> bool:
        return any(worker.running for worker in self.workers)

    @property
    def mode(self) -> ShutdownMode | None:
        return self._mode

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self._started:
                raise RuntimeError("scheduler already started")
            self._started = True

        self.cleanup.start()
        self.cleanup.request()

        self.updater.on_update(self._on_timetable_update)
        self.updater.start()

        self.recorder.on_start(self._on_record_start)
        self.recorder.on_complete(self._on_record_complete)
        self.recorder.start()
        logger.info("scheduler_started")

    def shutdown(self, immediate: bool = False) -> None:
        """Ask every worker to stop. A later immediate call escalates."""
        mode = ShutdownMode.IMMEDIATE if immediate else ShutdownMode.GRACEFUL
        with self._lock:
            if not self._started:
                return
            if self._mode is ShutdownMode.IMMEDIATE or self._mode is mode:
                return
            self._mode = mode

        logger.info("scheduler_shutdown_requested", mode=mode.value)
        for worker in self.workers:
            worker.shutdown(immediate)

    def wait_down(self) -> None:
        if not self._started:
            return
        logger.info("scheduler_waiting_shutdown")
        while self.running:
            time.sleep(self._poll_interval)
        logger.info("scheduler_down")

    def stop(self) -> None:
        self.shutdown()
        self.wait_down()

    def terminate(self) -> None:
        self.shutdown(immediate=True)
        self.wait_down()

    def restart(self) -> None:
        """Stop gracefully, start a fresh instance, wait for this one to drain."""
        self.shutdown()
        argv = [sys.executable, *sys.orig_argv[1:]]
        logger.info("scheduler_respawning", argv=argv)
        self._respawn(argv)
        self.wait_down()

    # ── Hooks ────────────────────────────────────────────────────

    def _on_timetable_update(self, schedule: Schedule) -> None:
        self.recorder.set_schedule(schedule)

    def _on_record_start(self, program: Program) -> None:
        title = f"agqr: ({int(time.time())}) {program.title!r}"
        if self._title_setter is not None:
            self._title_setter(title)
        logger.info("recording_started", title=title)

    def _on_record_complete(self, program: Program) -> None:
        self.cleanup.request()

    # ── Signals ──────────────────────────────────────────────────

    def install_signal_handlers(self) -> None:
        """Install handlers; must be called from the main thread."""
        signal.signal(signal.SIGINT, self._handle_stop_signal)
        signal.signal(signal.SIGTERM, self._handle_stop_signal)
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, self._handle_restart_signal)

    def _handle_stop_signal(self, signum, frame) -> None:
        self.request_stop()

    def _handle_restart_signal(self, signum, frame) -> None:
        self.request_restart()

    def request_stop(self) -> None:
        """Record one external stop request; repeated requests escalate."""
        self._stop_signals += 1
        if self._stop_signals == 1:
            self._control.put(ControlEvent.STOP)
        elif self._stop_signals == 2:
            self._control.put(ControlEvent.TERMINATE)
        else:
            self._control.put(ControlEvent.FORCE_EXIT)

    def request_restart(self) -> None:
        self._control.put(ControlEvent.RESTART)

    # ── Main thread ──────────────────────────────────────────────

    def _helper(self, target: Callable[[], None], name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=f"scheduler-{name}", daemon=True)
        thread.start()
        return thread

    def supervise(self) -> int:
        """Serve control events until every worker is down.

        Returns 0 after a clean shutdown, 1 when a worker crashed.
        """
        helpers: list[threading.Thread] = []
        crash_seen = False

        while True:
            try:
                event = self._control.get(timeout=self._poll_interval)
            except queue.Empty:
                event = None

            if event is ControlEvent.FORCE_EXIT:
                logger.error("scheduler_force_exit")
                self._exit_fn(1)
                return 1
            if event is ControlEvent.STOP:
                helpers.append(self._helper(self.stop, "stop"))
            elif event is ControlEvent.TERMINATE:
                helpers.append(self._helper(self.terminate, "terminate"))
            elif event is ControlEvent.RESTART:
                helpers.append(self._helper(self.restart, "restart"))

            crashed = [worker for worker in self.workers if worker.error is not None]
            if crashed and not crash_seen:
                crash_seen = True
                for worker in crashed:
                    logger.error("worker_crashed", worker=worker.name, error=repr(worker.error))
                helpers.append(self._helper(self.stop, "stop"))

            if not self.running:
                break

        for helper in helpers:
            helper.join()
        for worker in self.workers:
            worker.join()

        code = 1 if crash_seen or any(worker.error is not None for worker in self.workers) else 0
        logger.info("scheduler_exiting", code=code)
        return code

    def run(self) -> int:
        self.install_signal_handlers()
        self.start()
        return self.supervise()
