"""Tests for the Scheduler: wiring, signal escalation, restart, crashes."""

import signal
import sys
import threading

import pytest

from agqr.core.errors import WorkerCrashedError
from agqr.core.settings import AgqrSettings
from agqr.scheduling.cleanup_invoker import CleanupInvoker
from agqr.scheduling.protocol import WorkerState
from agqr.scheduling.recorder_invoker import RecorderInvoker
from agqr.scheduling.scheduler import Scheduler, ShutdownMode
from agqr.scheduling.timetable_updater import TimetableUpdater
from agqr.timetable.models import Program, Schedule
from agqr.timetable.source import DummyTimetableSource

PROGRAM = Program(day=0, starts_at=(6, 0), ends_at=(7, 0), title="Morning")


class FakeWorker:
    """Worker double; ``hold`` keeps it running through that kind of shutdown."""

    def __init__(self, name, hold=()):
        self.name = name
        self.hold = set(hold)
        self.shutdowns = []
        self.started = False
        self._running = False
        self.error = None
        self.hooks = {}
        self.schedules = []
        self.requests = 0

    # Worker protocol
    def start(self):
        self.started = True
        self._running = True

    def shutdown(self, immediate=False):
        self.shutdowns.append(immediate)
        if ("immediate" if immediate else "graceful") not in self.hold:
            self._running = False

    def join(self, timeout=None):
        pass

    @property
    def running(self):
        return self._running

    @property
    def state(self):
        return WorkerState.RUNNING if self._running else WorkerState.STOPPED

    def crash(self):
        self.error = WorkerCrashedError("boom")
        self._running = False

    # hooks used by the scheduler
    def on_update(self, callback):
        self.hooks["update"] = callback

    def on_start(self, callback):
        self.hooks["start"] = callback

    def on_complete(self, callback):
        self.hooks["complete"] = callback

    def set_schedule(self, schedule):
        self.schedules.append(schedule)

    def request(self):
        self.requests += 1


@pytest.fixture
def workers():
    return FakeWorker("updater"), FakeWorker("recorder"), FakeWorker("cleanup")


def _scheduler(workers, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("exit_fn", lambda code: pytest.fail("unexpected force exit"))
    updater, recorder, cleanup = workers
    return Scheduler(updater, recorder, cleanup, **kwargs)


def _supervise_in_background(scheduler):
    result = {}
    thread = threading.Thread(target=lambda: result.setdefault("code", scheduler.supervise()), daemon=True)
    thread.start()
    return thread, result


class TestStartAndWiring:
    """Workers are started and their hooks connected."""

    def test_start(self, workers):
        updater, recorder, cleanup = workers
        scheduler = _scheduler(workers)
        scheduler.start()
        assert updater.started and recorder.started and cleanup.started
        assert cleanup.requests == 1
        assert scheduler.running

    def test_double_start_raises(self, workers):
        scheduler = _scheduler(workers)
        scheduler.start()
        with pytest.raises(RuntimeError):
            scheduler.start()

    def test_timetable_update_reaches_recorder(self, workers):
        updater, recorder, _ = workers
        _scheduler(workers).start()
        schedule = Schedule.from_programs([PROGRAM])
        updater.hooks["update"](schedule)
        assert recorder.schedules == [schedule]

    def test_recording_completion_requests_cleanup(self, workers):
        _, recorder, cleanup = workers
        _scheduler(workers).start()
        recorder.hooks["complete"](PROGRAM)
        assert cleanup.requests == 2

    def test_recording_start_sets_title(self, workers):
        _, recorder, _ = workers
        titles = []
        _scheduler(workers, title_setter=titles.append).start()
        recorder.hooks["start"](PROGRAM)
        assert len(titles) == 1
        assert "'Morning'" in titles[0]


class TestShutdown:
    """Direct shutdown calls."""

    def test_shutdown_before_start_is_noop(self, workers):
        scheduler = _scheduler(workers)
        scheduler.shutdown()
        assert all(worker.shutdowns == [] for worker in workers)

    def test_graceful_once(self, workers):
        scheduler = _scheduler(workers)
        scheduler.start()
        scheduler.shutdown()
        scheduler.shutdown()
        assert all(worker.shutdowns == [False] for worker in workers)
        assert scheduler.mode is ShutdownMode.GRACEFUL

    def test_graceful_escalates(self, workers):
        scheduler = _scheduler(workers)
        scheduler.start()
        scheduler.shutdown()
        scheduler.shutdown(immediate=True)
        scheduler.shutdown()
        assert all(worker.shutdowns == [False, True] for worker in workers)
        assert scheduler.mode is ShutdownMode.IMMEDIATE


class TestSignals:
    """Escalating stop requests served by supervise()."""

    def test_first_stop_is_graceful(self, workers):
        scheduler = _scheduler(workers)
        scheduler.start()
        scheduler.request_stop()
        assert scheduler.supervise() == 0
        assert all(worker.shutdowns == [False] for worker in workers)

    def test_second_stop_terminates(self, workers, wait_until):
        _, recorder, _ = workers
        recorder.hold = {"graceful"}
        scheduler = _scheduler(workers)
        scheduler.start()
        thread, result = _supervise_in_background(scheduler)

        scheduler.request_stop()
        assert wait_until(lambda: recorder.shutdowns == [False])
        assert scheduler.running

        scheduler.request_stop()
        thread.join(5)
        assert result["code"] == 0
        assert recorder.shutdowns == [False, True]

    def test_third_stop_forces_exit(self, workers, wait_until):
        _, recorder, _ = workers
        recorder.hold = {"graceful", "immediate"}
        exits = []
        scheduler = _scheduler(workers, exit_fn=exits.append)
        scheduler.start()
        thread, result = _supervise_in_background(scheduler)

        scheduler.request_stop()
        assert wait_until(lambda: recorder.shutdowns == [False])
        scheduler.request_stop()
        assert wait_until(lambda: recorder.shutdowns == [False, True])
        scheduler.request_stop()

        thread.join(5)
        assert exits == [1]
        assert result["code"] == 1

    def test_os_signal_handlers(self, workers):
        previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)}
        scheduler = _scheduler(workers)
        try:
            scheduler.install_signal_handlers()
            scheduler.start()
            signal.raise_signal(signal.SIGTERM)
            assert scheduler.supervise() == 0
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
        assert all(worker.shutdowns == [False] for worker in workers)


class TestRestart:
    """Restart stops gracefully and spawns a fresh instance."""

    def test_restart(self, workers):
        spawned = []
        scheduler = _scheduler(workers, respawn=spawned.append)
        scheduler.start()
        scheduler.request_restart()
        assert scheduler.supervise() == 0

        assert len(spawned) == 1
        assert spawned[0][0] == sys.executable
        assert all(worker.shutdowns == [False] for worker in workers)


class TestCrash:
    """A crashed worker stops the rest and surfaces as exit code 1."""

    def test_crash_stops_others(self, workers):
        updater, recorder, cleanup = workers
        scheduler = _scheduler(workers)
        scheduler.start()
        updater.crash()

        assert scheduler.supervise() == 1
        assert recorder.shutdowns == [False]
        assert cleanup.shutdowns == [False]


class TestWithRealWorkers:
    """The three real workers under one scheduler."""

    def test_from_settings(self, tmp_path):
        settings = AgqrSettings(log_dir=tmp_path / "log", debug=True, dummy_timetable=True)
        scheduler = Scheduler.from_settings(settings)
        assert isinstance(scheduler.updater, TimetableUpdater)
        assert isinstance(scheduler.recorder, RecorderInvoker)
        assert isinstance(scheduler.cleanup, CleanupInvoker)
        assert (tmp_path / "log").is_dir()

    def test_start_and_stop(self, tmp_path):
        settings = AgqrSettings(log_dir=tmp_path / "log", cleanup_command=["true"], recorder_command=["true"])
        scheduler = Scheduler.from_settings(
            settings,
            source=DummyTimetableSource(),
            poll_interval=0.01,
            exit_fn=lambda code: pytest.fail("unexpected force exit"),
        )
        scheduler.start()
        scheduler.request_stop()
        assert scheduler.supervise() == 0
        assert not scheduler.running
        assert all(worker.state is WorkerState.STOPPED for worker in scheduler.workers)
