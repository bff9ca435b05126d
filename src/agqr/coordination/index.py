"""Public per-program listing, regenerated by appending new recordings."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from agqr.coordination.records import TIMESTAMP_FORMAT, ConsolidatedRecording
from agqr.coordination.work_store import WorkStore
from agqr.core.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

ENTRY_PATTERN = re.compile(r"<!-- rec:(?P<ts>\S+) -->.*?<!-- /rec:(?P=ts) -->", re.DOTALL)


def parse_entries(html: str) -> dict[str, str]:
    """Map timestamp → entry markup for every marked entry in *html*."""
    return {match.group("ts"): match.group(0) for match in ENTRY_PATTERN.finditer(html)}


class ListingIndex:
    """Render ``<program>/index.html`` from consolidated recordings.

    Entries already in the page are kept verbatim, so hand edits survive;
    only recordings whose timestamp marker is missing are rendered. The page
    is written only when something was appended.
    """

    def __init__(self, store: WorkStore, url_base: str = "", template_dir: Path | None = None):
        self.store = store
        self.url_base = url_base.rstrip("/")
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _url(self, path: str | None) -> str | None:
        if not path:
            return None
        return f"{self.url_base}{path}"

    def render_entry(self, recording: ConsolidatedRecording) -> str:
        try:
            date = datetime.strptime(recording.timestamp, TIMESTAMP_FORMAT).strftime("%Y-%m-%d %H:%M")
        except ValueError:
            date = recording.timestamp
        return self.env.get_template("entry.html").render(
            recording=recording,
            date=date,
            mp3_url=self._url(recording.mp3_path),
            mp4_url=self._url(recording.mp4_path),
        ).strip()

    def update(self, program: str) -> int:
        """Append missing recordings to the program's page; returns how many."""
        existing = parse_entries(self.store.read_index(program) or "")
        fresh = [rec for rec in self.store.consolidated_recordings(program) if rec.timestamp not in existing]
        if not fresh:
            logger.debug("index_up_to_date", program=program, entries=len(existing))
            return 0

        entries = dict(existing)
        for recording in fresh:
            entries[recording.timestamp] = self.render_entry(recording)

        html = self.env.get_template("index.html").render(
            program=program,
            entries=[entries[ts] for ts in sorted(entries)],
        )
        self.store.write_index(program, html)
        logger.info("index_updated", program=program, appended=len(fresh), entries=len(entries))
        return len(fresh)
