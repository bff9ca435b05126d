"""Weekly program timetable: value types, parser and sources."""

from agqr.timetable.models import Program, Schedule
from agqr.timetable.parser import parse_timetable
from agqr.timetable.source import DummyTimetableSource, HttpTimetableSource, TimetableSource

__all__ = [
    "Program",
    "Schedule",
    "parse_timetable",
    "TimetableSource",
    "HttpTimetableSource",
    "DummyTimetableSource",
]
