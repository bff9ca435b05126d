"""
Structured logging for the scheduler, its workers and the cleanup pass.

Every component logs snake_case event names with keyword fields::

    logger = get_logger(__name__)
    logger.info("recorder_spawned", pid=1234, program="Foo", start=1704078000)

Processor chain::

    merge_contextvars ─► timestamp ─► level ─► host/pid ─► stack/exc ─► renderer
                                                                         │
                                              JSON (not a tty) ◄─────────┤
                                              console (tty)   ◄──────────┘

Several hosts write into one bucket and every host runs a scheduler plus
short-lived cleanup children, so each line carries ``host`` and ``pid``.

Guardrails:
    - ``configure_logging`` runs once per process (``agqr run`` or an
      ``agqr cleanup`` child); library modules only call ``get_logger``.
    - Output goes to stderr; stdout carries command output
      (``status --pending-count`` is read by scripts).
    - Worker threads scope their name with :class:`LogContext`, so every
      line from that thread carries ``worker=...``.
"""

from __future__ import annotations

import logging
import os
import socket
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_HOSTNAME = socket.gethostname()


def _add_host_and_pid(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("host", _HOSTNAME)
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    hostname: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: True for JSON lines, False for the console renderer,
            None to pick JSON unless stderr is a terminal
        hostname: Name stamped on every line (the coordination hostname)
    """
    global _HOSTNAME
    if hostname:
        _HOSTNAME = hostname

    if json_format is None:
        json_format = not sys.stderr.isatty()
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        _add_host_and_pid,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer(ensure_ascii=False)]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )

    # boto3 and httpx log through the standard library
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, level=numeric_level)
    for noisy in ("botocore", "boto3", "urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """Structured logger, usually ``get_logger(__name__)``.

    PrintLogger has no name of its own, so the name travels as the
    ``logger_name`` field. It is an initial value of the lazy proxy, so nothing
    is bound before ``configure_logging`` runs.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)


class LogContext:
    """Bind fields to every line logged on this thread inside the block.

    Values bound by an enclosing block are restored on exit.
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = ["configure_logging", "get_logger", "LogContext"]
