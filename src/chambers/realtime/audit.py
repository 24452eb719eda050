"""
Audit Sink

Structured audit events for the voice bridge. Events never carry raw audio:
bulk payload fields are replaced with a size marker before emission.
"""

from typing import Any, Protocol

import structlog

from chambers.logging import REDACTED_FIELDS, redact_value


class AuditSink(Protocol):
    """Receiver for audit events."""

    def emit(self, action: str, **fields: Any) -> None: ...


def redact_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``fields`` with audio payloads redacted."""
    return {
        key: redact_value(value) if key in REDACTED_FIELDS else value
        for key, value in fields.items()
    }


class StructlogAuditSink:
    """Audit sink that writes events to the ``chambers.audit`` logger."""

    def __init__(self, logger: Any | None = None) -> None:
        self._logger = logger or structlog.get_logger("chambers.audit")

    def emit(self, action: str, **fields: Any) -> None:
        self._logger.info("audit", action=action, **redact_fields(fields))


class MemoryAuditSink:
    """Audit sink that keeps events in memory, for inspection."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def emit(self, action: str, **fields: Any) -> None:
        self.events.append({"action": action, **redact_fields(fields)})

    def actions(self) -> list[str]:
        return [event["action"] for event in self.events]


__all__ = ["AuditSink", "StructlogAuditSink", "MemoryAuditSink", "redact_fields"]
