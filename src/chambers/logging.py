"""
Structured Logging

structlog configuration shared by the API server and the CLI. Audio payloads
are redacted before any renderer sees them.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

# Event fields that may carry base64 audio
REDACTED_FIELDS = ("audio", "delta")

_configured = False


def redact_value(value: Any) -> Any:
    """Replace a bulk audio string with a short size marker."""
    if isinstance(value, str):
        return f"[base64 {len(value)} chars]"
    if isinstance(value, (bytes, bytearray)):
        return f"[binary {len(value)} bytes]"
    return value


def redact_audio(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor that strips raw audio from log events."""
    for key in REDACTED_FIELDS:
        if key in event_dict:
            event_dict[key] = redact_value(event_dict[key])
    return event_dict


def configure_logging(
    level: str = "INFO",
    log_format: str = "console",
    *,
    force: bool = False,
) -> None:
    """Configure structlog on top of stdlib logging.

    Idempotent unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_audio,
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

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

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    _configured = True


__all__ = ["configure_logging", "redact_audio", "redact_value", "REDACTED_FIELDS"]
