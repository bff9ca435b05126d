"""
CLI utility helpers: output consoles, settings and store construction.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from agqr.core.errors import MissingConfigError
from agqr.core.logging import configure_logging
from agqr.core.settings import AgqrSettings, get_settings
from agqr.storage.base import Storage
from agqr.storage.local import LocalStorage
from agqr.storage.s3 import S3Storage

console = Console()
err_console = Console(stderr=True)


def load_settings(**overrides) -> AgqrSettings:
    """Settings for this invocation, with logging configured from them."""
    settings = get_settings()
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if overrides:
        settings = settings.model_copy(update=overrides)
    configure_logging(level=settings.log_level, json_format=settings.log_json, hostname=settings.hostname)
    return settings


def fail_config(exc: MissingConfigError) -> NoReturn:
    err_console.print(f"[bold red]Configuration error[/bold red]: {exc.message}")
    raise typer.Exit(code=2)


def open_storage(settings: AgqrSettings, local_store: Path | None = None) -> Storage:
    """A local directory when given, the configured bucket otherwise."""
    if local_store is not None:
        return LocalStorage(local_store)
    try:
        return S3Storage.from_settings(settings)
    except MissingConfigError as exc:
        fail_config(exc)
