"""Timetable sources: where the scheduler gets its weekly Schedule from."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx

from agqr.core.errors import NetworkError
from agqr.core.logging import get_logger
from agqr.timetable.models import Program, Schedule
from agqr.timetable.parser import parse_timetable

logger = get_logger(__name__)


@runtime_checkable
class TimetableSource(Protocol):
    """Anything that can produce a fresh Schedule."""

    def fetch(self) -> Schedule:
        """Return the current weekly schedule.

        Raises:
            NetworkError: The timetable could not be downloaded
            ParseError: The timetable could not be understood
        """
        ...


class HttpTimetableSource:
    """Download and parse the station's streaming timetable page."""

    TIMEOUT = 30

    def __init__(self, url: str, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self.url = url
        self.timeout = timeout or self.TIMEOUT
        self._transport = transport

    def fetch(self) -> Schedule:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(self.url)
                response.raise_for_status()
                content = response.content
        except httpx.HTTPError as exc:
            raise NetworkError(f"Failed to download timetable: {exc}", cause=exc).with_context(
                url=self.url
            )

        schedule = parse_timetable(content)
        logger.debug("timetable_downloaded", url=self.url, programs=schedule.programs)
        return schedule


class DummyTimetableSource:
    """Synthetic schedule for dry runs: a short program every *every* minutes."""

    def __init__(self, every: int = 10, length: int = 2):
        if not 0 < length < every:
            raise ValueError("length must be positive and shorter than the interval")
        self.every = every
        self.length = length

    def fetch(self) -> Schedule:
        programs = []
        for day in range(7):
            for minute_of_day in range(0, 24 * 60, self.every):
                start = divmod(minute_of_day, 60)
                end = divmod(minute_of_day + self.length, 60)
                programs.append(
                    Program(
                        day=day,
                        starts_at=start,
                        ends_at=end,
                        title=f"dummy-{start[0]:02d}{start[1]:02d}",
                        repeat=False,
                    )
                )
        return Schedule.from_programs(programs)
