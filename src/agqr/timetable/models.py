"""Program and Schedule value types."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

_BLANK = re.compile(r"[\s　]+")

#: Monday=0 … Sunday=6, same as :meth:`datetime.weekday`.
WEEKDAYS = range(7)


@dataclass(frozen=True)
class Program:
    """One slot of the weekly timetable.

    ``starts_at``/``ends_at`` are ``(hour, minute)`` pairs on the program's
    broadcast day. Hours may exceed 23 for slots that run past midnight.
    """

    day: int
    starts_at: tuple[int, int]
    ends_at: tuple[int, int]
    title: str
    personality: str | None = None
    link: str | None = None
    repeat: bool = False
    live: bool = False
    video: bool = False

    def __post_init__(self) -> None:
        if self.day not in WEEKDAYS:
            raise ValueError(f"day must be 0..6, got {self.day!r}")
        if not self.title or not _BLANK.sub("", self.title):
            raise ValueError("title is not present")

    @property
    def duration_minutes(self) -> int:
        start = self.starts_at[0] * 60 + self.starts_at[1]
        end = self.ends_at[0] * 60 + self.ends_at[1]
        if end <= start:
            end += 24 * 60
        return end - start

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def recording_title(self) -> str:
        """Title handed to the recorder; re-broadcasts get their own listing."""
        return f"{self.title}-repeat" if self.repeat else self.title

    def __str__(self) -> str:
        h, m = self.starts_at
        return f"{self.title} ({self.day}:{h:02d}{m:02d}, {self.duration_minutes}min)"


@dataclass(frozen=True)
class Schedule:
    """Weekly timetable: weekday → programs ordered by start time.

    Two schedules compare equal when every program compares equal, which is
    what the timetable updater relies on to detect changes. The day map is a
    dict, so a schedule cannot be hashed.
    """

    days: dict[int, tuple[Program, ...]] = field(default_factory=dict)

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def from_programs(cls, programs) -> Schedule:
        days: dict[int, list[Program]] = {}
        for program in programs:
            days.setdefault(program.day, []).append(program)
        return cls(
            {day: tuple(sorted(progs, key=lambda p: p.starts_at)) for day, progs in days.items()}
        )

    @property
    def programs(self) -> int:
        return sum(len(progs) for progs in self.days.values())

    def take(self, n: int, from_: datetime) -> list[tuple[datetime, Program]]:
        """Return the next *n* ``(start, program)`` pairs at or after *from_*.

        Walks forward day by day from the calendar day of *from_*; programs
        that already started are skipped. Start times carry ``from_``'s
        timezone and match ``Program.starts_at`` on the wall clock.
        """
        if n <= 0 or not self.programs:
            return []

        midnight = datetime.combine(from_.date(), time(0, 0), tzinfo=from_.tzinfo)
        upcoming: list[tuple[datetime, Program]] = []

        # the previous day may hold slots past 24:00 that land on the start day
        offset = -1
        while len(upcoming) < n:
            self._collect(midnight + timedelta(days=offset), from_, upcoming)
            offset += 1
        self._collect(midnight + timedelta(days=offset), from_, upcoming)

        upcoming.sort(key=lambda pair: pair[0])
        return upcoming[:n]

    def _collect(
        self, date: datetime, from_: datetime, into: list[tuple[datetime, Program]]
    ) -> None:
        for program in self.days.get(date.weekday(), ()):
            hour, minute = program.starts_at
            start = date + timedelta(hours=hour, minutes=minute)
            if start >= from_:
                into.append((start, program))
