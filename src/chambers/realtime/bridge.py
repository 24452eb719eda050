"""
Voice Bridge

Owns the process-side state shared by voice connections: the rate-limit
registry, the audit sink, the token verifier and the upstream factory. One
bridge instance lives on each application; connections never share state
through module globals.
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

import structlog
from fastapi import WebSocket

from chambers.config import Settings

from .audit import AuditSink, StructlogAuditSink
from .rate_limit import FixedWindowRateLimiter
from .session import (
    REASON_CLIENT_DISCONNECTED,
    TokenVerifierProtocol,
    UpstreamFactory,
    UpstreamSession,
    VoiceSession,
)
from .upstream import RealtimeSpeechClient, UpstreamConfig, UpstreamEventSink

logger = structlog.get_logger()

REASON_SERVER_SHUTDOWN = "Server shutting down"


def openai_upstream_factory(settings: Settings) -> UpstreamFactory:
    """Build an upstream factory that connects to OpenAI Realtime."""

    def factory(voice: str, sink: UpstreamEventSink) -> UpstreamSession:
        config = UpstreamConfig(
            api_key=settings.openai_api_key,
            model=settings.realtime_model,
            instructions=settings.realtime_system_prompt,
            voice=voice,
            url=settings.openai_realtime_url,
            transcription_model=settings.realtime_transcription_model,
            connect_timeout_s=settings.voice_connect_timeout_s,
        )
        return RealtimeSpeechClient(config, sink)

    return factory


class VoiceBridge:
    """
    Accepts voice WebSockets and runs one :class:`VoiceSession` per socket.

    Usage:
        bridge = VoiceBridge(settings, verifier=TokenVerifier())
        await bridge.handle(websocket)
    """

    def __init__(
        self,
        settings: Settings,
        *,
        verifier: TokenVerifierProtocol,
        upstream_factory: UpstreamFactory | None = None,
        rate_limiter: FixedWindowRateLimiter | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.settings = settings
        self.verifier = verifier
        self.upstream_factory = upstream_factory or openai_upstream_factory(settings)
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            limit=settings.voice_rate_limit_per_second,
            window_seconds=settings.voice_rate_limit_window_seconds,
        )
        self.audit = audit or StructlogAuditSink()
        self._sessions: dict[str, VoiceSession] = {}

        if not settings.realtime_available:
            logger.warning("OPENAI_API_KEY not configured - voice sessions will fail")

    @property
    def active_connection_count(self) -> int:
        return len(self._sessions)

    @property
    def active_session_count(self) -> int:
        return sum(1 for session in self._sessions.values() if session.upstream is not None)

    def get_session(self, connection_id: str) -> VoiceSession | None:
        return self._sessions.get(connection_id)

    def create_session(self, websocket: WebSocket) -> VoiceSession:
        connection_id = str(uuid4())
        session = VoiceSession(
            websocket,
            connection_id,
            verifier=self.verifier,
            rate_limiter=self.rate_limiter,
            upstream_factory=self.upstream_factory,
            default_voice=self.settings.realtime_default_voice,
            session_timeout_s=self.settings.voice_session_timeout_s,
            audit=self.audit,
            on_ended=self._forget,
        )
        self._sessions[connection_id] = session
        return session

    async def handle(self, websocket: WebSocket) -> None:
        """Accept ``websocket`` and serve it until it closes."""
        await websocket.accept()
        session = self.create_session(websocket)
        try:
            await session.run()
        finally:
            await session.terminate(REASON_CLIENT_DISCONNECTED)
            self._forget(session)

    async def shutdown(self) -> None:
        """End every live connection."""
        for session in list(self._sessions.values()):
            await session.terminate(REASON_SERVER_SHUTDOWN)
        self._sessions.clear()

    def _forget(self, session: VoiceSession) -> None:
        self._sessions.pop(session.connection_id, None)

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_connections": self.active_connection_count,
            "active_sessions": self.active_session_count,
            "rate_limit_records": len(self.rate_limiter),
        }


__all__ = ["VoiceBridge", "openai_upstream_factory", "REASON_SERVER_SHUTDOWN"]
