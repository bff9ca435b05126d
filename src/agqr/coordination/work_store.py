"""Stateless query/mutation layer over the object store.

Nothing here is cached between calls: every method lists or reads the store
again, so a coordinator always acts on what is visible right now.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from agqr.coordination.records import (
    META_NAME,
    VOTE_NAME,
    ConsolidatedRecording,
    Group,
    HostAttempt,
)
from agqr.core.errors import StorageError
from agqr.core.logging import get_logger
from agqr.storage.base import ObjectInfo, Storage

logger = get_logger(__name__)

# per-attempt file lists dropped from the consolidated metadata
RAW_LIST_KEYS = ("flv_paths", "mp3_paths")


class WorkStore:
    """Groups, host attempts, locks and consolidated recordings in one bucket."""

    def __init__(self, storage: Storage, prefix: str = ""):
        self.storage = storage
        self.prefix = prefix.strip("/")

    @property
    def root(self) -> str:
        return f"{self.prefix}/" if self.prefix else ""

    # ── Discovery ────────────────────────────────────────────────

    def programs(self) -> list[str]:
        root = self.root
        return [p[len(root):].rstrip("/") for p in self.storage.list_prefixes(root)]

    def groups(self, program: str) -> list[Group]:
        work_prefix = f"{self.root}{program}/work/"
        return [
            Group(program=program, timestamp=p[len(work_prefix):].rstrip("/"), root=self.root)
            for p in self.storage.list_prefixes(work_prefix)
        ]

    def all_groups(self) -> Iterator[Group]:
        for program in self.programs():
            yield from self.groups(program)

    def host_attempts(self, group: Group) -> list[HostAttempt]:
        """Every host sub-container of *group*, in listing order.

        Objects directly under the group (the lock) do not form a host.
        """
        by_host: dict[str, list[ObjectInfo]] = {}
        for info in self.storage.list(group.work_prefix):
            host, sep, _ = info.key[len(group.work_prefix):].partition("/")
            if not sep:
                continue
            by_host.setdefault(host, []).append(info)

        attempts = []
        for host, infos in by_host.items():
            attempt = HostAttempt(
                host=host,
                prefix=group.host_prefix(host),
                keys=tuple(info.key for info in infos),
                last_modified=_newest(info.last_modified for info in infos),
            )
            for info in infos:
                name = attempt.relative(info.key)
                if name == META_NAME:
                    attempt.meta = self._read_meta(info.key)
                    attempt.meta_modified = info.last_modified
                elif name == VOTE_NAME:
                    attempt.vote = self._read_vote(info.key)
            attempts.append(attempt)
        return attempts

    def _read_meta(self, key: str) -> dict[str, Any] | None:
        try:
            meta = json.loads(self.storage.read(key))
        except FileNotFoundError:
            logger.info("meta_vanished", key=key)
            return None
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("meta_unreadable", key=key, error=repr(exc))
            return None
        if not isinstance(meta, dict):
            logger.warning("meta_unreadable", key=key, error="not an object")
            return None
        return meta

    def _read_vote(self, key: str) -> int:
        try:
            return int(self.storage.read_text(key).strip())
        except FileNotFoundError:
            return -1
        except ValueError:
            logger.warning("vote_unreadable", key=key)
            return -1

    # ── Lock ─────────────────────────────────────────────────────

    def lock_holder(self, group: Group) -> str | None:
        try:
            holder = self.storage.read_text(group.lock_key).strip()
        except FileNotFoundError:
            return None
        return holder or None

    def declare_work(self, group: Group, hostname: str) -> None:
        self.storage.write_text(group.lock_key, hostname)
        logger.info("work_declared", group=str(group), host=hostname)

    def declare_work_finish(self, group: Group) -> None:
        self.storage.delete(group.lock_key)
        logger.info("work_finished", group=str(group))

    # ── Consolidation ────────────────────────────────────────────

    def is_consolidated(self, group: Group) -> bool:
        return self.storage.exists(group.consolidated_key("json"))

    def extract(self, group: Group, attempt: HostAttempt) -> dict[str, Any]:
        """Promote *attempt*'s single-file outputs into the public listing.

        Returns the trimmed metadata written next to them.
        """
        meta = dict(attempt.meta or {})
        for field, extension in (("single_mp3_path", "mp3"), ("single_mp4_path", "mp4")):
            name = meta.get(field)
            if not name:
                continue
            destination = group.consolidated_key(extension)
            self._copy(attempt.key_for(name), destination)
            meta[field] = f"/{destination}"

        for key in RAW_LIST_KEYS:
            meta.pop(key, None)

        self.storage.write_text(
            group.consolidated_key("json"), json.dumps(meta, ensure_ascii=False), "application/json"
        )
        logger.info("work_extracted", group=str(group), host=attempt.host)
        return meta

    def relocate(self, attempt: HostAttempt, destination: str, skip: set[str] | None = None) -> int:
        """Move *attempt*'s objects under *destination*; *skip* keys are only deleted."""
        skip = skip or set()
        moved = 0
        for key in attempt.keys:
            if key in skip:
                continue
            self._copy(key, f"{destination}{attempt.relative(key)}")
            moved += 1
        self.storage.delete_many(attempt.keys)
        logger.info("work_relocated", host=attempt.host, destination=destination, moved=moved)
        return moved

    def destroy(self, attempt: HostAttempt) -> None:
        self.storage.delete_many(attempt.keys)
        logger.info("work_destroyed", host=attempt.host, objects=len(attempt.keys))

    def _copy(self, source: str, destination: str) -> None:
        try:
            self.storage.copy(source, destination)
        except FileNotFoundError as exc:
            raise StorageError(f"Missing object {source}", cause=exc).with_context(
                key=source, destination=destination
            )

    # ── Listing ──────────────────────────────────────────────────

    def consolidated_recordings(self, program: str) -> list[ConsolidatedRecording]:
        rec_prefix = f"{self.root}{program}/rec/"
        recordings = []
        for info in self.storage.list(rec_prefix):
            name = info.key[len(rec_prefix):]
            if "/" in name or not name.endswith(".json"):
                continue
            recordings.append(
                ConsolidatedRecording(timestamp=name[: -len(".json")], meta=self._read_meta(info.key) or {})
            )
        return sorted(recordings, key=lambda rec: rec.timestamp)

    def read_index(self, program: str) -> str | None:
        try:
            return self.storage.read_text(f"{self.root}{program}/index.html")
        except FileNotFoundError:
            return None

    def write_index(self, program: str, html: str) -> None:
        self.storage.write_text(f"{self.root}{program}/index.html", html, "text/html")


def _newest(values: Iterator[datetime | None]) -> datetime | None:
    present = [value for value in values if value is not None]
    return max(present) if present else None


