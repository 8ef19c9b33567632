# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Logging setup for the tenancy back office.

Application code logs through the standard library (``logging.getLogger``
with %-style arguments). ``setup_logging`` puts a structlog
``ProcessorFormatter`` on the root handler so those records come out as
JSON in production and colored console lines in development, carrying any
context bound with ``bind_context`` (the provisioning run id and flow).

Credential material never reaches the output: event dict keys listed in
``REDACTED_KEYS`` are masked before rendering.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from src.core.config.settings import Settings

REDACTED_KEYS = frozenset(
    {"password", "temporary_password", "login_token", "id_token", "api_key", "private_key"}
)

_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite", "aiosmtplib", "asyncio")


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Mask values of credential-bearing keys."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(settings: "Settings") -> None:
    """Route stdlib and structlog records through one processor chain.

    Args:
        settings: Supplies ``log_level`` and selects the renderer.
    """
    level = logging.getLevelName(settings.log_level)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]

    renderer: Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if settings.is_development or settings.debug
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**values: Any) -> None:
    """Attach values to every log line emitted from the current task.

    Bindings live in contextvars, so concurrent provisioning runs keep
    their own run id.
    """
    structlog.contextvars.bind_contextvars(**values)


def unbind_context(*keys: str) -> None:
    """Drop keys previously bound with ``bind_context``."""
    structlog.contextvars.unbind_contextvars(*keys)
