"""
Shared pytest fixtures for agqr tests.

- ``clean_env``: no ``AGQR_*`` variable or ``config.yml`` leaks into a test
- ``storage``: a LocalStorage on ``tmp_path``
- ``counting_storage``: the same store, recording every mutating call
- ``wait_until``: poll a condition with a deadline (worker threads)
- ``python_child``: argv for a short-lived Python child process
"""

from __future__ import annotations

import os
import sys
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from agqr.core.settings import reset_settings
from agqr.storage.local import LocalStorage


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate settings from the developer's environment."""
    for key in list(os.environ):
        if key.startswith("AGQR_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("AGQR_CONFIG", str(tmp_path / "absent-config.yml"))
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


class CountingStorage(LocalStorage):
    """LocalStorage that records writes, copies and deletes."""

    def __init__(self, base_path: Path):
        super().__init__(base_path)
        self.calls: list[tuple[str, ...]] = []

    def write(self, path, content, content_type=None):
        self.calls.append(("write", path))
        return super().write(path, content, content_type)

    def copy(self, source, destination):
        self.calls.append(("copy", source, destination))
        return super().copy(source, destination)

    def delete(self, path):
        self.calls.append(("delete", path))
        return super().delete(path)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def reset(self) -> None:
        self.calls.clear()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(tmp_path / "bucket")


@pytest.fixture
def counting_storage(tmp_path: Path) -> CountingStorage:
    return CountingStorage(tmp_path / "bucket")


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    def wait(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return wait


@pytest.fixture
def python_child() -> Callable[[str], list[str]]:
    """argv running *code* in a fresh interpreter."""

    def argv(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return argv
