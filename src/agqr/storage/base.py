"""Object store interface shared by the S3 bucket and the local directory store.

Keys are ``/``-separated strings. A prefix such as ``Foo/work/`` exists only
while some key starts with it, and listing one level below a prefix yields
the distinct next path segments (S3 ``CommonPrefixes``). The coordinator
relies on both properties to discover programs, groups and hosts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    last_modified: datetime | None = None
    content_type: str | None = None

    @property
    def name(self) -> str:
        """Last path segment of the key."""
        return self.key.rsplit("/", 1)[-1]


def clean_key(key: str) -> str:
    return key.lstrip("/")


class Storage(ABC):
    """A flat bucket of keyed objects.

    Missing objects surface as ``FileNotFoundError`` from :meth:`read` and
    :meth:`copy`; backend failures surface as
    :class:`~agqr.core.errors.StorageError`.
    """

    @abstractmethod
    def write(self, path: str, content: bytes | str, content_type: str | None = None) -> ObjectInfo:
        """Store *content* under *path*, replacing any existing object."""

    @abstractmethod
    def read(self, path: str) -> bytes: ...

    @abstractmethod
    def info(self, path: str) -> ObjectInfo | None:
        """Metadata of one object, or None when it does not exist."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove one object; False when there was nothing to remove."""

    @abstractmethod
    def copy(self, source: str, destination: str) -> None: ...

    @abstractmethod
    def list(self, prefix: str = "") -> Iterator[ObjectInfo]:
        """Every object whose key starts with *prefix*, in key order."""

    @abstractmethod
    def list_prefixes(self, prefix: str = "") -> list[str]:
        """Distinct prefixes one segment below *prefix*, each ending in ``/``."""

    def exists(self, path: str) -> bool:
        return self.info(path) is not None

    def delete_many(self, paths: Iterable[str]) -> int:
        """Remove several objects; returns how many were removed."""
        return sum(1 for path in paths if self.delete(path))

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        return self.read(path).decode(encoding)

    def write_text(
        self, path: str, content: str, content_type: str = "text/plain; charset=utf-8"
    ) -> ObjectInfo:
        return self.write(path, content.encode("utf-8"), content_type=content_type)
