"""Single-threaded event loop shared by the workers.

Each worker owns exactly one ``EventLoop``: one dedicated thread blocking in
a multiplexed wait over a small event set:

    - posted events (stop, reload, request, complete), delivered through a
      ``queue.SimpleQueue`` so posting is safe from any thread
    - one-shot timers at absolute wall-clock deadlines

Posted events are always served before due timers, so a reload or stop that
was posted before a timer became due is handled first. Everything besides
``post`` must only be called from the loop thread (the handler), so the
timer heap needs no locking.
"""

from __future__ import annotations

import heapq
import itertools
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agqr.core.errors import WorkerCrashedError
from agqr.core.logging import LogContext, get_logger
from agqr.scheduling.protocol import WorkerState

logger = get_logger(__name__)

# wake up at least this often so wall-clock jumps are noticed
MAX_WAIT_SECONDS = 30.0


class EventKind(str, Enum):
    STOP = "stop"
    RELOAD = "reload"
    TIMER = "timer"
    REQUEST = "request"
    COMPLETE = "complete"


@dataclass(frozen=True)
class LoopEvent:
    kind: EventKind
    payload: Any = None


@dataclass(eq=False)
class TimerHandle:
    """An armed one-shot timer. ``payload`` travels with the TIMER event."""

    deadline: float
    payload: Any = None
    cancelled: bool = field(default=False)
    fired: bool = field(default=False)

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class EventLoop:
    """Thread + inbox + timer heap; dispatches every event to *handler*.

    The loop ends on a STOP event or when the handler raises. In the latter
    case the exception is logged with its traceback and kept in ``error``;
    the worker ends up STOPPED either way.
    """

    def __init__(
        self,
        name: str,
        handler: Callable[[LoopEvent], None],
        clock: Callable[[], float] = time.time,
        on_exit: Callable[[], None] | None = None,
    ):
        self.name = name
        self._handler = handler
        self._on_exit = on_exit
        self._clock = clock
        self._inbox: queue.SimpleQueue[LoopEvent] = queue.SimpleQueue()
        self._timers: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self.state = WorkerState.IDLE
        self.error: BaseException | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle (any thread)
    # ------------------------------------------------------------------ #

    def start(self) -> bool:
        """Start the loop thread. Returns False when already started."""
        with self._start_lock:
            if self._thread is not None:
                return False
            self.state = WorkerState.RUNNING
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
            return True

    def post(self, kind: EventKind, payload: Any = None) -> None:
        """Queue an event for the loop thread. Safe from signal handlers."""
        self._inbox.put(LoopEvent(kind, payload))

    def stop(self, immediate: bool = False) -> None:
        if self.state is WorkerState.RUNNING and not immediate:
            self.state = WorkerState.SHUTTING_DOWN_GRACEFUL
        elif self.state in (WorkerState.RUNNING, WorkerState.SHUTTING_DOWN_GRACEFUL) and immediate:
            self.state = WorkerState.SHUTTING_DOWN_IMMEDIATE
        self.post(EventKind.STOP)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def on_loop_thread(self) -> bool:
        return threading.current_thread() is self._thread

    # ------------------------------------------------------------------ #
    # Timers (loop thread only)
    # ------------------------------------------------------------------ #

    def now(self) -> float:
        return self._clock()

    def arm(self, deadline: float, payload: Any = None) -> TimerHandle:
        """Arm a one-shot timer at an absolute wall-clock *deadline*."""
        handle = TimerHandle(deadline=deadline, payload=payload)
        heapq.heappush(self._timers, (deadline, next(self._seq), handle))
        return handle

    def arm_after(self, seconds: float, payload: Any = None) -> TimerHandle:
        return self.arm(self._clock() + seconds, payload)

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancelled = True

    def cancel_all(self) -> int:
        """Cancel every pending timer; returns how many were cancelled."""
        count = 0
        for _, _, handle in self._timers:
            if handle.pending:
                handle.cancelled = True
                count += 1
        self._timers.clear()
        return count

    def remaining(self, handle: TimerHandle | None) -> float:
        """Seconds until *handle* fires; 0 when fired, cancelled or absent."""
        if handle is None or not handle.pending:
            return 0.0
        return max(0.0, handle.deadline - self._clock())

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, handle in self._timers if handle.pending)

    # ------------------------------------------------------------------ #
    # Loop
    # ------------------------------------------------------------------ #

    def _next_event(self) -> LoopEvent:
        while True:
            try:
                return self._inbox.get_nowait()
            except queue.Empty:
                pass

            while self._timers and not self._timers[0][2].pending:
                heapq.heappop(self._timers)

            timeout = MAX_WAIT_SECONDS
            if self._timers:
                deadline, _, handle = self._timers[0]
                delay = deadline - self._clock()
                if delay <= 0:
                    heapq.heappop(self._timers)
                    handle.fired = True
                    return LoopEvent(EventKind.TIMER, handle)
                timeout = min(delay, MAX_WAIT_SECONDS)

            try:
                return self._inbox.get(timeout=timeout)
            except queue.Empty:
                continue

    def _run(self) -> None:
        with LogContext(worker=self.name):
            logger.info("worker_loop_started")
            try:
                while True:
                    event = self._next_event()
                    if event.kind is EventKind.STOP:
                        break
                    self._handler(event)
                logger.info("worker_loop_exiting")
            except Exception as exc:
                logger.exception("worker_loop_crashed", error=repr(exc))
                self.error = WorkerCrashedError(f"{self.name} crashed: {exc!r}", cause=exc).with_context(
                    worker=self.name
                )
            finally:
                self._timers.clear()
                self.state = WorkerState.STOPPED
                if self._on_exit is not None:
                    self._on_exit()
                logger.info("worker_loop_stopped")
