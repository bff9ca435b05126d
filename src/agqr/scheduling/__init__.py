"""Workers, the event loop they share, and the scheduler composing them."""

from agqr.scheduling.cleanup_invoker import CleanupInvoker
from agqr.scheduling.loop import EventKind, EventLoop, LoopEvent, TimerHandle
from agqr.scheduling.protocol import Worker, WorkerState
from agqr.scheduling.recorder_invoker import RecorderInvoker, TimerJob
from agqr.scheduling.scheduler import ControlEvent, Scheduler, ShutdownMode
from agqr.scheduling.timetable_updater import TimetableUpdater

__all__ = [
    "Worker",
    "WorkerState",
    "EventKind",
    "EventLoop",
    "LoopEvent",
    "TimerHandle",
    "TimetableUpdater",
    "RecorderInvoker",
    "TimerJob",
    "CleanupInvoker",
    "ControlEvent",
    "Scheduler",
    "ShutdownMode",
]
