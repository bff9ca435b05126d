"""Run the cleanup command after a jittered quiet period."""

from __future__ import annotations

import random
import subprocess
import threading
import time
from collections.abc import Callable
from pathlib import Path

from agqr.core.errors import ChildProcessFailure, ErrorContext
from agqr.core.logging import get_logger
from agqr.scheduling.loop import EventKind, EventLoop, LoopEvent, TimerHandle
from agqr.scheduling.protocol import WorkerState

logger = get_logger(__name__)


class CleanupInvoker:
    """Debounced cleanup trigger.

    ``request()`` arms a timer ``margin + uniform(0, jitter)`` seconds out.
    Requests that arrive while the timer is still pending are coalesced into
    it. When the timer fires and no cleanup child is alive, one is spawned
    with its output appended to ``cleaner.log``; at most one child exists at
    any time.
    """

    name = "cleanup_invoker"

    def __init__(
        self,
        command: list[str],
        log_dir: Path | None = None,
        *,
        margin: float = 530.0,
        jitter: float = 60.0,
        terminate_timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self._command = list(command)
        self._log_dir = log_dir
        self._margin = margin
        self._jitter = jitter
        self._terminate_timeout = terminate_timeout

        self._timer: TimerHandle | None = None
        self._lock = threading.Lock()
        self._proc: subprocess.Popen | None = None
        self._watchdog: threading.Thread | None = None
        self._abandoned = False
        self.runs = 0

        self._loop = EventLoop(self.name, self._dispatch, clock=clock)

    def request(self) -> None:
        """Ask for a cleanup run. Safe from any thread, including hooks."""
        self._loop.post(EventKind.REQUEST)

    @property
    def pid(self) -> int | None:
        """Pid of the cleanup child while it is alive."""
        with self._lock:
            proc = self._proc
        if proc is None or proc.returncode is not None:
            return None
        return proc.pid

    # ── Worker protocol ──────────────────────────────────────────

    def start(self) -> None:
        self._loop.start()

    def shutdown(self, immediate: bool = False) -> None:
        if not self.running:
            return
        self._loop.stop(immediate)
        if immediate:
            self._terminate()

    def join(self, timeout: float | None = None) -> None:
        self._loop.join(timeout)
        watchdog = self._watchdog
        if watchdog is not None and not self._abandoned:
            watchdog.join(timeout)

    @property
    def running(self) -> bool:
        watchdog = self._watchdog
        watching = watchdog is not None and watchdog.is_alive() and not self._abandoned
        return self._loop.alive or watching

    @property
    def state(self) -> WorkerState:
        return self._loop.state

    @property
    def error(self) -> BaseException | None:
        return self._loop.error

    def _terminate(self) -> None:
        with self._lock:
            proc = self._proc
        if proc is None:
            return
        logger.warning("cleanup_terminating", pid=proc.pid)
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        watchdog = self._watchdog
        if watchdog is not None:
            watchdog.join(self._terminate_timeout)
            if watchdog.is_alive():
                # daemon thread; it dies with the process
                self._abandoned = True
                logger.error("cleanup_watchdog_abandoned", pid=proc.pid, timeout=self._terminate_timeout)

    # ── Loop ─────────────────────────────────────────────────────

    def _dispatch(self, event: LoopEvent) -> None:
        if event.kind is EventKind.REQUEST:
            self._arm_request()
        elif event.kind is EventKind.TIMER:
            self._timer = None
            self._perform()
        elif event.kind is EventKind.COMPLETE:
            self._finalize(event.payload)

    def _arm_request(self) -> None:
        if self._loop.remaining(self._timer) > 0:
            logger.debug("cleanup_request_coalesced")
            return
        delay = self._margin + random.uniform(0, self._jitter)
        self._timer = self._loop.arm_after(delay)
        logger.info("cleanup_scheduled", seconds=round(delay, 1))

    def _perform(self) -> None:
        with self._lock:
            busy = self._proc is not None
        if busy:
            logger.info("cleanup_skipped_running", pid=self.pid)
            return

        log_io = None
        try:
            if self._log_dir is not None:
                log_io = open(self._log_dir / "cleaner.log", "a")
                log_io.write(f"=> run at {time.strftime('%Y-%m-%d %H:%M:%S %z')}\n")
                log_io.flush()
            proc = subprocess.Popen(
                self._command,
                stdout=log_io,
                stderr=subprocess.STDOUT if log_io is not None else None,
                stdin=subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.error("cleanup_spawn_failed", argv=self._command, error=repr(exc))
            return
        finally:
            if log_io is not None:
                log_io.close()

        with self._lock:
            self._proc = proc
        self.runs += 1
        logger.info("cleanup_spawned", pid=proc.pid)

        self._watchdog = threading.Thread(
            target=self._watch, args=(proc,), name=f"{self.name}-watchdog", daemon=True
        )
        self._watchdog.start()

    def _watch(self, proc: subprocess.Popen) -> None:
        proc.wait()
        self._loop.post(EventKind.COMPLETE, proc)

    def _finalize(self, proc: subprocess.Popen) -> None:
        with self._lock:
            if self._proc is proc:
                self._proc = None
        pid, returncode = proc.pid, proc.returncode
        if returncode == 0:
            logger.info("cleanup_finished", pid=pid)
            return
        failure = ChildProcessFailure(returncode, context=ErrorContext(worker=self.name, pid=pid))
        logger.warning("cleanup_failed", **failure.to_dict())
