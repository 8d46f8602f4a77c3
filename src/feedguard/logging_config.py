# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging setup: stdlib ``logging`` calls rendered through structlog.

Modules log with ``logging.getLogger(__name__)``; ``configure()`` decides the
output (console for humans, JSON lines for pipelines).  Every line carries
the session context bound by ``bind_session`` and has API keys masked, since
classifier errors can echo request headers or settings back.

Leaf module, no feedguard imports.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import IO, Any

import structlog

# Groq ("gsk_...") and OpenAI-style ("sk-...") keys, plus bearer headers
_SECRET_RE = re.compile(r"\b(?:gsk_|sk-)[A-Za-z0-9_\-]{6,}|(?<=Bearer )[^\s\"',]+")
REDACTED = "[redacted]"

# Chatty HTTP internals; one line per request at INFO
_HTTP_LOGGERS = ("httpx", "httpcore")


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: mask API keys in any string value."""
    for key, value in event_dict.items():
        if isinstance(value, str) and ("sk" in value or "Bearer" in value):
            event_dict[key] = _SECRET_RE.sub(REDACTED, value)
    return event_dict


def _shared_processors() -> list:
    # Applied to structlog calls and to foreign stdlib records alike
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]


def configure(*, json_output: bool = False, level: str = "INFO", stream: IO[str] | None = None) -> None:
    """Install a single structlog-formatted handler on the root logger.

    Args:
        json_output: JSON lines instead of the colored console renderer.
        level: Root level name; unknown names fall back to INFO.
        stream: Destination, default ``sys.stderr`` so stdout stays clean
            for the CLI's JSON reports.
    """
    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root_level = getattr(logging, level.upper(), None)
    root.setLevel(root_level if isinstance(root_level, int) else logging.INFO)

    http_level = logging.NOTSET if root.level <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def bind_session(**values: object) -> None:
    """Bind per-session context (e.g. host) to every log line in this task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_session() -> None:
    structlog.contextvars.clear_contextvars()
