"""Settings for the scheduler, the recorder/cleanup children and the CLI.

Order of precedence (highest → lowest):
    1. Keyword arguments (tests, CLI overrides)
    2. Environment variables (``AGQR_S3_BUCKET``, ``AGQR_DEBUG``, ...)
    3. ``.env`` file
    4. ``config.yml`` (``AGQR_CONFIG`` points elsewhere)
    5. Defaults below

``debug`` shortens every periodic interval so a full
fetch → record → cleanup cycle can be watched in minutes.
"""

from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from agqr.core.errors import MissingConfigError

DEFAULT_TIMETABLE_URL = "http://www.agqr.jp/timetable/streaming.php"


def _config_path() -> Path:
    return Path(os.environ.get("AGQR_CONFIG", "config.yml"))


def _default_cleanup_command() -> list[str]:
    return [sys.executable, "-m", "agqr", "cleanup"]


class AgqrSettings(BaseSettings):
    """Recorder settings.

    Fields
    ──────
    s3_*            : Object store holding per-host work and the public listing
    log_dir         : Where child process output is written
    debug           : Shorter intervals, no cleanup jitter
    hostname        : Name this host uses for votes, locks and work keys
    recorder_command: argv prefix of the Recorder Process
    cleanup_command : argv of the Cleanup Process
    """

    model_config = SettingsConfigDict(
        env_prefix="AGQR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Object store ─────────────────────────────────────────────
    s3_region: str | None = None
    s3_bucket: str | None = None
    s3_prefix: str = ""
    s3_endpoint_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    # ── Observability ────────────────────────────────────────────
    log_dir: Path = Path("./log")
    log_level: str = "INFO"
    log_json: bool | None = None
    debug: bool = False

    # ── Identity / publishing ────────────────────────────────────
    hostname: str = Field(default_factory=socket.gethostname)
    url_base: str = "http://localhost"

    # ── Timetable ────────────────────────────────────────────────
    timetable_url: str = DEFAULT_TIMETABLE_URL
    timezone: str = "Asia/Tokyo"
    dummy_timetable: bool = False

    # ── Children ─────────────────────────────────────────────────
    recorder_command: list[str] = Field(default_factory=lambda: ["agqr-record"])
    cleanup_command: list[str] = Field(default_factory=_default_cleanup_command)

    # ── Scheduling / coordination ────────────────────────────────
    lookahead: int = 20
    lead_seconds: int = 60
    quiescence_seconds: float = 600.0

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_config_path()),
            file_secret_settings,
        )

    @field_validator("s3_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        return value.rstrip("/")

    # ── Derived intervals ────────────────────────────────────────

    @property
    def timetable_interval(self) -> float:
        return 300.0 if self.debug else 1800.0

    @property
    def timetable_jitter(self) -> float:
        return 120.0

    @property
    def cleanup_margin(self) -> float:
        return 5.0 if self.debug else 530.0

    @property
    def cleanup_jitter(self) -> float:
        return 0.0 if self.debug else 60.0

    def require_store(self) -> None:
        """Fail fast when the object store is not configured."""
        if not self.s3_bucket:
            raise MissingConfigError("s3_bucket")
        if not self.s3_region:
            raise MissingConfigError("s3_region")


_settings: AgqrSettings | None = None


def get_settings() -> AgqrSettings:
    """Get or create the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = AgqrSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
