"""Arm one timer per upcoming program and supervise the recorder children.

┌──────────────────────────────────────────────────────────────────────────────┐
│  RECORDER INVOKER                                                             │
│                                                                               │
│  set_schedule(S) ──► RELOAD ──► cancel all timers, arm take(lookahead)        │
│                                                                               │
│  TIMER (start - lead) ──► spawn recorder ──► pids[pid] = program             │
│                                   │                                           │
│                                   └──► watchdog thread ──► waiter queue       │
│                                          on_start(program)                    │
│                                          wait for exit                        │
│                                          on_complete(program)                 │
│                                                                               │
│  < 2 timers left ──► RELOAD (top up from the current schedule)               │
│                                                                               │
│  The waiter thread joins watchdogs in spawn order; it ends once the loop     │
│  has stopped and every queued watchdog returned (graceful drain).            │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import queue
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path

from agqr.core.errors import ChildProcessFailure, ErrorContext
from agqr.core.logging import LogContext, get_logger
from agqr.scheduling.loop import EventKind, EventLoop, LoopEvent, TimerHandle
from agqr.scheduling.protocol import WorkerState
from agqr.timetable.models import Program, Schedule

logger = get_logger(__name__)

ProgramCallback = Callable[[Program], None]

# below this many armed timers the set is topped up from the current schedule
TOP_UP_THRESHOLD = 2


@dataclass(eq=False)
class TimerJob:
    start: datetime
    program: Program
    handle: TimerHandle | None = None

    @property
    def timestamp(self) -> int:
        return int(self.start.timestamp())


class RecorderInvoker:
    """Turn a Schedule into armed timers and recorder child processes."""

    name = "recorder_invoker"

    def __init__(
        self,
        command: list[str],
        log_dir: Path | None = None,
        *,
        lookahead: int = 20,
        lead_seconds: float = 60.0,
        timezone: tzinfo | None = None,
        terminate_timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self._command = list(command)
        self._log_dir = log_dir
        self._lookahead = lookahead
        self._lead = lead_seconds
        self._tz = timezone
        self._terminate_timeout = terminate_timeout

        self._on_start: ProgramCallback | None = None
        self._on_complete: ProgramCallback | None = None

        self._schedule: Schedule | None = None
        self._jobs: list[TimerJob] = []
        self._fired: set[tuple[int, Program]] = set()

        self._pids_lock = threading.Lock()
        self._pids: dict[int, tuple[subprocess.Popen, Program]] = {}

        self._watchdogs: queue.SimpleQueue[threading.Thread | None] = queue.SimpleQueue()
        self._waiter: threading.Thread | None = None
        self._abandoned = False

        self._loop = EventLoop(self.name, self._dispatch, clock=clock, on_exit=self._close_waiter)

    # ── Wiring ───────────────────────────────────────────────────

    def on_start(self, callback: ProgramCallback) -> None:
        self._on_start = callback

    def on_complete(self, callback: ProgramCallback) -> None:
        self._on_complete = callback

    def set_schedule(self, schedule: Schedule) -> None:
        """Replace the schedule; the timer set is rebuilt on the loop thread."""
        self._schedule = schedule
        self._loop.post(EventKind.RELOAD)

    @property
    def schedule(self) -> Schedule | None:
        return self._schedule

    @property
    def pids(self) -> dict[int, Program]:
        """Snapshot of the running recorders."""
        with self._pids_lock:
            return {pid: program for pid, (_, program) in self._pids.items()}

    @property
    def jobs(self) -> list[TimerJob]:
        """Armed jobs in firing order (a copy)."""
        return sorted(self._jobs, key=lambda job: job.start)

    # ── Worker protocol ──────────────────────────────────────────

    def start(self) -> None:
        if self._loop.started:
            return
        self._waiter = threading.Thread(
            target=self._wait_watchdogs, name=f"{self.name}-waiter", daemon=True
        )
        self._waiter.start()
        self._loop.post(EventKind.RELOAD)
        self._loop.start()

    def shutdown(self, immediate: bool = False) -> None:
        if not self.running:
            return
        self._loop.stop(immediate)
        if immediate:
            self._terminate()
        else:
            self._teardown()

    def join(self, timeout: float | None = None) -> None:
        self._loop.join(timeout)
        if self._waiter is not None and not self._abandoned:
            self._waiter.join(timeout)

    @property
    def running(self) -> bool:
        waiter_alive = self._waiter is not None and self._waiter.is_alive() and not self._abandoned
        return self._loop.alive or waiter_alive

    @property
    def state(self) -> WorkerState:
        return self._loop.state

    @property
    def error(self) -> BaseException | None:
        return self._loop.error

    def _teardown(self) -> None:
        running = self.pids
        logger.info("recorder_invoker_teardown", recorders=len(running))
        for pid, program in running.items():
            logger.info("recorder_still_running", pid=pid, program=str(program))

    def _terminate(self) -> None:
        self._teardown()
        with self._pids_lock:
            processes = list(self._pids.items())
        for pid, (proc, program) in processes:
            logger.warning("recorder_terminating", pid=pid, program=str(program))
            try:
                proc.terminate()
            except ProcessLookupError:
                pass

        if self._waiter is not None:
            self._waiter.join(self._terminate_timeout)
            if self._waiter.is_alive():
                # daemon threads; they die with the process
                self._abandoned = True
                logger.error("recorder_watchdogs_abandoned", timeout=self._terminate_timeout)

    # ── Loop ─────────────────────────────────────────────────────

    def _dispatch(self, event: LoopEvent) -> None:
        if event.kind is EventKind.RELOAD:
            self._reload()
        elif event.kind is EventKind.TIMER:
            self._fire(event.payload.payload)

    def _reload(self) -> None:
        schedule = self._schedule
        if schedule is None:
            logger.info("recorder_no_schedule")
            return

        cancelled = self._loop.cancel_all()
        self._jobs = []

        now = self._loop.now()
        self._fired = {key for key in self._fired if key[0] >= now}

        from_ = datetime.fromtimestamp(now, tz=self._tz)
        for start, program in schedule.take(self._lookahead, from_):
            job = TimerJob(start=start, program=program)
            if (job.timestamp, program) in self._fired:
                continue
            job.handle = self._loop.arm(job.timestamp - self._lead, job)
            self._jobs.append(job)
            logger.debug("recorder_timer_armed", start=start.isoformat(), program=str(program))

        logger.info("recorder_timers_updated", armed=len(self._jobs), cancelled=cancelled)

    def _fire(self, job: TimerJob) -> None:
        if job in self._jobs:
            self._jobs.remove(job)
        self._fired.add((job.timestamp, job.program))
        self.invoke(job)

        remaining = self._loop.pending_timers
        logger.info("recorder_remaining_timers", remaining=remaining)
        if remaining < TOP_UP_THRESHOLD:
            self._reload()

    def invoke(self, job: TimerJob) -> int | None:
        """Spawn the recorder for *job*; returns the pid, None if spawning failed."""
        program = job.program
        argv = [*self._command, program.recording_title, str(program.duration_seconds), str(job.timestamp)]

        log_io = None
        try:
            if self._log_dir is not None:
                log_io = open(self._log_dir / f"recorder.{job.timestamp}.log", "w")
                log_io.write(f"=> {job.start.isoformat()} {program}\n")
                log_io.flush()
            proc = subprocess.Popen(
                argv,
                stdout=log_io,
                stderr=subprocess.STDOUT if log_io is not None else None,
                stdin=subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.error("recorder_spawn_failed", argv=argv, error=repr(exc))
            return None
        finally:
            if log_io is not None:
                log_io.close()

        logger.info("recorder_spawned", pid=proc.pid, program=str(program), start=job.timestamp)
        with self._pids_lock:
            self._pids[proc.pid] = (proc, program)

        watchdog = threading.Thread(
            target=self._watchdog,
            args=(proc, program),
            name=f"{self.name}-watchdog-{proc.pid}",
            daemon=True,
        )
        watchdog.start()
        self._watchdogs.put(watchdog)
        return proc.pid

    # ── Supervision threads ──────────────────────────────────────

    def _call_hook(self, hook_name: str, hook: ProgramCallback | None, program: Program) -> None:
        if hook is None:
            return
        try:
            hook(program)
        except Exception as exc:
            logger.exception("recorder_hook_failed", hook=hook_name, error=repr(exc))

    def _watchdog(self, proc: subprocess.Popen, program: Program) -> None:
        with LogContext(worker=self.name, child=proc.pid):
            self._call_hook("on_start", self._on_start, program)
            try:
                returncode = proc.wait()
            finally:
                with self._pids_lock:
                    self._pids.pop(proc.pid, None)

            if returncode == 0:
                logger.info("recorder_finished", program=str(program))
            else:
                failure = ChildProcessFailure(
                    returncode,
                    context=ErrorContext(worker=self.name, program=program.title, pid=proc.pid),
                )
                logger.warning("recorder_failed", **failure.to_dict())

            self._call_hook("on_complete", self._on_complete, program)

    def _wait_watchdogs(self) -> None:
        while True:
            watchdog = self._watchdogs.get()
            if watchdog is None:
                break
            watchdog.join()
            if self._loop.state is not WorkerState.RUNNING:
                logger.info("recorder_draining", remaining=self._watchdogs.qsize())
        logger.info("recorder_waiter_exited")

    def _close_waiter(self) -> None:
        self._watchdogs.put(None)
