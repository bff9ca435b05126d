"""Directory-backed object store for operators (``--local-store``) and tests."""

from __future__ import annotations

import mimetypes
import shutil
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from agqr.core.logging import get_logger
from agqr.storage.base import ObjectInfo, Storage, clean_key

logger = get_logger(__name__)


class LocalStorage(Storage):
    """Keys map onto files below ``base_path``.

    Emptied directories are removed on delete, so a prefix vanishes with its
    last key as it does in a bucket. Copies get a fresh modification time,
    like an S3 server-side copy.
    """

    def __init__(self, base_path: str | Path = "./data"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.debug("local_storage_initialized", base_path=str(self.base_path))

    def _file(self, key: str) -> Path:
        target = self.base_path / clean_key(Path(key).as_posix())
        if not target.resolve().is_relative_to(self.base_path):
            raise ValueError(f"Key escapes the store: {key}")
        return target

    def _object(self, target: Path) -> ObjectInfo:
        stat = target.stat()
        return ObjectInfo(
            key=target.relative_to(self.base_path).as_posix(),
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            content_type=mimetypes.guess_type(target.name)[0],
        )

    def write(self, path: str, content: bytes | str, content_type: str | None = None) -> ObjectInfo:
        target = self._file(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8") if isinstance(content, str) else content)
        return self._object(target)

    def read(self, path: str) -> bytes:
        target = self._file(path)
        if not target.is_file():
            raise FileNotFoundError(f"Object not found: {path}")
        return target.read_bytes()

    def info(self, path: str) -> ObjectInfo | None:
        target = self._file(path)
        return self._object(target) if target.is_file() else None

    def delete(self, path: str) -> bool:
        target = self._file(path)
        if not target.is_file():
            return False
        target.unlink()

        parent = target.parent
        while parent != self.base_path and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
        return True

    def copy(self, source: str, destination: str) -> None:
        src = self._file(source)
        if not src.is_file():
            raise FileNotFoundError(f"Object not found: {source}")
        dst = self._file(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dst)

    def list(self, prefix: str = "") -> Iterator[ObjectInfo]:
        prefix = clean_key(prefix)
        # only walk below the deepest directory the prefix names
        directory = self.base_path / prefix.rpartition("/")[0]
        if not directory.is_dir():
            return
        for target in sorted(directory.rglob("*")):
            if target.is_file():
                info = self._object(target)
                if info.key.startswith(prefix):
                    yield info

    def list_prefixes(self, prefix: str = "") -> list[str]:
        prefix = clean_key(prefix)
        parent, _, partial = prefix.rpartition("/")
        directory = self.base_path / parent
        if not directory.is_dir():
            return []
        return [
            f"{child.relative_to(self.base_path).as_posix()}/"
            for child in sorted(directory.iterdir())
            if child.is_dir() and child.name.startswith(partial)
        ]
