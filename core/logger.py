"""Structured logging — JSON in prod, coloured console in dev.

Signing code handles API secrets, passphrases and private keys; the
``scrub_secrets`` processor masks them even if a caller binds one by mistake.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from config.settings import settings

_SECRET_KEYS = frozenset(
    {"secret", "api_secret", "passphrase", "api_passphrase", "private_key", "key"}
)

_configured = False


def truncate(value: str, keep: int = 10) -> str:
    """Shorten identifiers (token ids, api keys, addresses) for log output."""
    if len(value) <= keep:
        return value
    return value[:keep] + "..."


def scrub_secrets(
    _logger: Any, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: replace secret-looking values with ``***``."""
    for k in list(event_dict):
        if k.lower() in _SECRET_KEYS and event_dict[k]:
            event_dict[k] = "***"
    return event_dict


def setup_logging(force: bool = False) -> None:
    """Configure structlog processors and stdlib integration."""
    global _configured
    if _configured and not force:
        return

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        scrub_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.APP_ENV == "dev":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())
    _configured = True
