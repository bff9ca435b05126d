"""CLI tests run commands in-process; keep their structured logs quiet."""

import logging

import pytest
import structlog


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("agqr.cli.utils.configure_logging", lambda **kwargs: None)
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    yield
    structlog.reset_defaults()
