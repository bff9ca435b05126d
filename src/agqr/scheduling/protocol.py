"""Worker capability protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  WORKER LIFECYCLE                                                             │
│                                                                               │
│   IDLE ──start()──► RUNNING ──shutdown(False)──► SHUTTING_DOWN_GRACEFUL ─┐    │
│                        │                                                  │    │
│                        ├──shutdown(True)───► SHUTTING_DOWN_IMMEDIATE ─────┤    │
│                        │                                                  ▼    │
│                        └──unhandled exception (error set) ──────────► STOPPED  │
│                                                                               │
│  Graceful:  stop event posted, in-flight children drained, never killed.      │
│  Immediate: stop event posted, children sent SIGTERM, waiters force-joined.  │
└──────────────────────────────────────────────────────────────────────────────┘

The scheduler only talks to its workers through this protocol; the three
workers share loop plumbing by composing an :class:`~agqr.scheduling.loop.EventLoop`.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable


class WorkerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN_GRACEFUL = "shutting_down_graceful"
    SHUTTING_DOWN_IMMEDIATE = "shutting_down_immediate"
    STOPPED = "stopped"


@runtime_checkable
class Worker(Protocol):
    """Minimal contract the Scheduler relies on."""

    name: str

    def start(self) -> None:
        """Spawn the worker thread. Calling it again is a no-op."""
        ...

    def shutdown(self, immediate: bool = False) -> None:
        """Post the stop event; with *immediate*, also terminate children."""
        ...

    def join(self, timeout: float | None = None) -> None:
        """Block until the worker thread and its auxiliary threads exited."""
        ...

    @property
    def running(self) -> bool: ...

    @property
    def state(self) -> WorkerState: ...

    @property
    def error(self) -> BaseException | None:
        """The exception that stopped the loop, if any."""
        ...
