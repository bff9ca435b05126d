"""Parse the station's weekly streaming timetable page into a Schedule.

The page is a single ``<table class="timetb-ag">`` (``timetb-am`` for the AM
station): the header row names the weekdays in Japanese, and each body row
holds one ``<td>`` per weekday column. A cell without a ``.time`` element is
only allowed for filler slots (``bg-etc``).

Cell classes:
    - ``bg-f``   first airing
    - ``bg-l``   live broadcast (also a first airing)
    - ``bg-etc`` filler, not recorded
    - anything else is a re-broadcast
"""

from __future__ import annotations

import re
from typing import Any

from bs4 import BeautifulSoup

from agqr.core.errors import ParseError
from agqr.timetable.models import Program, Schedule

_BLANK = re.compile(r"[\s　]+")
_HHMM = re.compile(r"(\d+):(\d+)")

# 1 row = 30 minutes
_ROW_MINUTES = 30

_WEEKDAYS = {
    "月曜日": 0,
    "火曜日": 1,
    "水曜日": 2,
    "木曜日": 3,
    "金曜日": 4,
    "土曜日": 5,
    "日曜日": 6,
}


def _text(node) -> str | None:
    if node is None:
        return None
    return _BLANK.sub("", node.get_text())


def _parse_cell(td, day: int) -> dict[str, Any]:
    classes = td.get("class") or []
    etc = "bg-etc" in classes

    time_node = td.select_one(".time")
    if time_node is None and not etc:
        raise ParseError(f".time not found: {td.get_text()!r}")

    starts_at = None
    if time_node is not None:
        match = _HHMM.search(time_node.get_text())
        if not match:
            raise ParseError(f".time doesn't match HH:MM: {time_node.get_text()!r}")
        starts_at = (int(match.group(1)), int(match.group(2)))

    link = td.select_one(".title-p a")

    return {
        "day": day,
        "starts_at": starts_at,
        "span": int(td.get("rowspan") or 1),
        "title": _text(td.select_one(".title-p")),
        "personality": _text(td.select_one(".rp")),
        "link": link.get("href") if link is not None else None,
        "video": td.select_one('img[src*="icon_m."]') is not None,
        "repeat": not ("bg-f" in classes or "bg-l" in classes),
        "live": "bg-l" in classes,
        "etc": etc,
    }


def _ends_at(info: dict[str, Any], following: dict[str, Any] | None) -> tuple[int, int]:
    if following is not None and following["starts_at"] is not None:
        return following["starts_at"]
    hour, minute = info["starts_at"]
    return divmod(hour * 60 + minute + info["span"] * _ROW_MINUTES, 60)


def parse_timetable(html: str | bytes) -> Schedule:
    """Parse timetable markup.

    Raises:
        ParseError: The table, a heading or a time cell is not understood
    """
    soup = BeautifulSoup(html, "html.parser")

    table = soup.select_one(".timetb-am, .timetb-ag")
    if table is None or table.thead is None or table.tbody is None:
        raise ParseError("timetable table not found")

    headings = table.thead.find_all(["td", "th"])[1:]
    day_map: dict[int, int] = {}
    for i, heading in enumerate(headings):
        day = _WEEKDAYS.get(_text(heading) or "")
        if day is None:
            raise ParseError(f"Unknown heading at {i}: {heading.get_text()!r}")
        day_map[i] = day

    cells_by_day: dict[int, list] = {}
    for tr in table.tbody.find_all("tr", recursive=False):
        for i, td in enumerate(tr.find_all("td")):
            if i not in day_map:
                raise ParseError(f"Unknown day column {i}: {td.get_text()!r}")
            cells_by_day.setdefault(day_map[i], []).append(td)

    programs: list[Program] = []
    for day, cells in cells_by_day.items():
        infos = [_parse_cell(td, day) for td in cells]
        for i, info in enumerate(infos):
            if info["etc"]:
                continue
            following = infos[i + 1] if i + 1 < len(infos) else None
            try:
                programs.append(
                    Program(
                        day=day,
                        starts_at=info["starts_at"],
                        ends_at=_ends_at(info, following),
                        title=info["title"] or "",
                        personality=info["personality"],
                        link=info["link"],
                        repeat=info["repeat"],
                        live=info["live"],
                        video=info["video"],
                    )
                )
            except ValueError as exc:
                raise ParseError(f"Invalid program cell on day {day}: {exc}", cause=exc)

    return Schedule.from_programs(programs)
