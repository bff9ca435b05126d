"""Plain records for the object-store side of coordination.

Key layout (``root`` is ``"<s3_prefix>/"``, or empty without a prefix)::

    <root><program>/work/<ts>/work-mark             lock, only while consolidating
    <root><program>/work/<ts>/<host>/meta.json      written last by the recorder
    <root><program>/work/<ts>/<host>/vote.txt
    <root><program>/work/<ts>/<host>/*.flv *.mp3 all.mp3 all.mp4
    <root><program>/rec/<ts>.{mp3,mp4,json}         consolidated recording
    <root><program>/rec/<ts>/<host>/...             archived raw host work
    <root><program>/index.html                      public listing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"

LOCK_NAME = "work-mark"
META_NAME = "meta.json"
VOTE_NAME = "vote.txt"

# added to the attempt count when a host produced no single mp3
MISSING_OUTPUT_PENALTY = 1000


@dataclass(frozen=True)
class Group:
    """One work group: every host's attempt at one scheduled recording."""

    program: str
    timestamp: str
    root: str = ""

    @property
    def program_prefix(self) -> str:
        return f"{self.root}{self.program}/"

    @property
    def work_prefix(self) -> str:
        return f"{self.program_prefix}work/{self.timestamp}/"

    @property
    def lock_key(self) -> str:
        return f"{self.work_prefix}{LOCK_NAME}"

    @property
    def rec_prefix(self) -> str:
        return f"{self.program_prefix}rec/"

    @property
    def index_key(self) -> str:
        return f"{self.program_prefix}index.html"

    def host_prefix(self, host: str) -> str:
        return f"{self.work_prefix}{host}/"

    def consolidated_key(self, extension: str) -> str:
        return f"{self.rec_prefix}{self.timestamp}.{extension}"

    def archive_prefix(self, host: str) -> str:
        return f"{self.rec_prefix}{self.timestamp}/{host}/"

    @property
    def pubdate(self) -> datetime | None:
        try:
            return datetime.strptime(self.timestamp, TIMESTAMP_FORMAT)
        except ValueError:
            return None

    def __str__(self) -> str:
        return f"{self.program}/{self.timestamp}"


@dataclass
class HostAttempt:
    """What one host left behind for a group."""

    host: str
    prefix: str
    keys: tuple[str, ...] = ()
    meta: dict[str, Any] | None = None
    vote: int = -1
    meta_modified: datetime | None = None
    last_modified: datetime | None = None

    @property
    def complete(self) -> bool:
        """The recorder writes meta.json last; without it the host is still uploading or died."""
        return self.meta is not None

    @property
    def error_count(self) -> int:
        meta = self.meta or {}
        try:
            tries = int(meta.get("try") or 0)
        except (TypeError, ValueError):
            tries = 0
        return tries + (0 if meta.get("single_mp3_path") else MISSING_OUTPUT_PENALTY)

    def relative(self, key: str) -> str:
        return key[len(self.prefix):]

    def key_for(self, name: str) -> str:
        return f"{self.prefix}{name}"

    @property
    def promoted_keys(self) -> set[str]:
        """Keys whose content is copied into the consolidated recording."""
        meta = self.meta or {}
        names = [meta.get("single_mp3_path"), meta.get("single_mp4_path")]
        return {self.key_for(name) for name in names if isinstance(name, str) and name}


@dataclass
class ConsolidatedRecording:
    """A published recording as listed in a program's index."""

    timestamp: str
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def mp3_path(self) -> str | None:
        return self.meta.get("single_mp3_path")

    @property
    def mp4_path(self) -> str | None:
        return self.meta.get("single_mp4_path")

    @property
    def title(self) -> str | None:
        program = self.meta.get("program")
        if isinstance(program, dict):
            return program.get("title")
        return None
