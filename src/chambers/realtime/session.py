"""
Voice Session

Per-connection state machine for the ``/api/voice`` WebSocket. Authenticates
the client, owns at most one upstream speech session, forwards audio in both
directions, enforces the rate limit and the absolute session timeout, and
tears both sockets down through a single cleanup routine.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

import orjson
import structlog
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from pydantic import ValidationError

from chambers.errors import TokenVerificationError

from .audit import AuditSink, StructlogAuditSink
from .protocol import (
    AudioChunkFrame,
    AudioDoneFrame,
    AuthSuccessFrame,
    ClientMessage,
    ClientMessageType,
    ErrorCode,
    ErrorFrame,
    ServerFrame,
    SessionEndedFrame,
    SessionReadyFrame,
    TranscriptDeltaFrame,
    TranscriptDoneFrame,
    UserSpeechStartedFrame,
    UserSpeechStoppedFrame,
    parse_client_message,
)
from .rate_limit import FixedWindowRateLimiter
from .upstream import UpstreamEventSink

logger = structlog.get_logger()

WS_CLOSE_NORMAL = 1000

REASON_CLIENT_END = "Client requested end"
REASON_CLIENT_DISCONNECTED = "Client disconnected"
REASON_TIMEOUT = "Session timeout"
REASON_UPSTREAM_CLOSED = "OpenAI connection closed"
REASON_NO_TOKEN = "No token provided"
REASON_AUTH_FAILED = "Authentication failed"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    SESSION_ACTIVE = "session_active"
    ENDED = "ended"


class TokenVerifierProtocol(Protocol):
    async def verify(self, token: str) -> str: ...


class UpstreamSession(Protocol):
    """What the session needs from an upstream speech client."""

    async def connect(self) -> None: ...

    async def send_audio(self, audio: str) -> None: ...

    async def interrupt(self) -> None: ...

    async def close(self) -> None: ...


UpstreamFactory = Callable[[str, UpstreamEventSink], UpstreamSession]
SleepFn = Callable[[float], Awaitable[Any]]


class VoiceSession:
    """
    One client connection to the voice bridge.

    Frames are handled serially by :meth:`run`. Upstream events arrive on the
    upstream client's receive task and are forwarded through the same send
    lock. Every termination trigger goes through :meth:`terminate`.
    """

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: str,
        *,
        verifier: TokenVerifierProtocol,
        rate_limiter: FixedWindowRateLimiter,
        upstream_factory: UpstreamFactory,
        default_voice: str = "sage",
        session_timeout_s: float = 600.0,
        audit: AuditSink | None = None,
        sleep: SleepFn = asyncio.sleep,
        on_ended: Callable[[VoiceSession], None] | None = None,
    ) -> None:
        self.connection_id = connection_id
        self._ws = websocket
        self._verifier = verifier
        self._rate_limiter = rate_limiter
        self._upstream_factory = upstream_factory
        self._default_voice = default_voice
        self._session_timeout_s = session_timeout_s
        self._audit = audit or StructlogAuditSink()
        self._sleep = sleep
        self._on_ended = on_ended

        self._state = SessionState.UNAUTHENTICATED
        self._user_id: str | None = None
        self._upstream: UpstreamSession | None = None
        self._timer: asyncio.Task | None = None
        self._ended = False
        self._client_gone = False
        self._send_lock = asyncio.Lock()
        self._log = logger.bind(connection_id=connection_id)

        self._handlers: dict[str, Callable[[ClientMessage], Awaitable[None]]] = {
            ClientMessageType.AUTH.value: self._handle_auth,
            ClientMessageType.SESSION_START.value: self._handle_session_start,
            ClientMessageType.AUDIO_CHUNK.value: self._handle_audio_chunk,
            ClientMessageType.INTERRUPT.value: self._handle_interrupt,
            ClientMessageType.SESSION_END.value: self._handle_session_end,
        }

        self._rate_limiter.register(connection_id)

    # ──────────────────────────────────────────────────────────
    # Introspection
    # ──────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def upstream(self) -> UpstreamSession | None:
        return self._upstream

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ──────────────────────────────────────────────────────────
    # Frame Loop
    # ──────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Process inbound frames until the connection ends."""
        self._log.info("Client connected")
        self._audit.emit("voice.connection.opened", connection_id=self.connection_id)

        try:
            while not self._ended:
                raw = await self._receive()
                if raw is None:
                    break
                await self.handle_frame(raw)
        except Exception as e:
            self._log.error("WebSocket error", error=str(e))
            self._client_gone = True
        finally:
            await self.terminate(REASON_CLIENT_DISCONNECTED)

    async def _receive(self) -> str | bytes | None:
        try:
            message = await self._ws.receive()
        except WebSocketDisconnect:
            message = {"type": "websocket.disconnect"}

        if message.get("type") == "websocket.disconnect":
            self._log.info("Client disconnected")
            self._client_gone = True
            return None

        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"]
        return b""

    async def handle_frame(self, raw: str | bytes) -> None:
        """Handle one inbound frame. Never raises."""
        try:
            message = parse_client_message(raw)
        except (orjson.JSONDecodeError, ValidationError) as e:
            self._log.warning("Malformed client message", error=str(e))
            await self._send_error(ErrorCode.INVALID_MESSAGE, "Invalid message format")
            return

        if message.type != ClientMessageType.AUTH.value and not self._rate_limiter.check(
            self.connection_id
        ):
            await self._send_error(ErrorCode.RATE_LIMIT, "Rate limit exceeded")
            return

        handler = self._handlers.get(message.type)
        if handler is None:
            self._log.info("Unknown message type", message_type=message.type)
            return

        try:
            await handler(message)
        except Exception as e:
            self._log.error(
                "Error processing message",
                message_type=message.type,
                error=str(e),
            )
            await self._send_error(ErrorCode.INVALID_MESSAGE, "Invalid message format")

    # ──────────────────────────────────────────────────────────
    # Handlers
    # ──────────────────────────────────────────────────────────

    async def _handle_auth(self, message: ClientMessage) -> None:
        if self._state is not SessionState.UNAUTHENTICATED:
            self._log.info("Ignoring auth on authenticated connection")
            return

        if not message.token:
            await self._send_error(ErrorCode.AUTH_REQUIRED, "Token required")
            await self.terminate(REASON_NO_TOKEN)
            return

        try:
            if not isinstance(message.token, str):
                raise TokenVerificationError("Token must be a string")
            user_id = await self._verifier.verify(message.token)
        except TokenVerificationError:
            self._log.error("Authentication failed")
            self._audit.emit("voice.auth.failed", connection_id=self.connection_id)
            await self._send_error(ErrorCode.AUTH_FAILED, "Invalid token")
            await self.terminate(REASON_AUTH_FAILED)
            return

        self._user_id = user_id
        self._state = SessionState.AUTHENTICATED
        self._log = self._log.bind(user_id=user_id)
        self._log.info("User authenticated")
        self._audit.emit(
            "voice.auth.success", connection_id=self.connection_id, user_id=user_id
        )
        await self._send(AuthSuccessFrame())

    async def _handle_session_start(self, message: ClientMessage) -> None:
        if self._user_id is None:
            await self._send_error(ErrorCode.NOT_AUTHENTICATED, "Not authenticated")
            return

        if self._upstream is not None:
            self._log.info("Closing existing OpenAI session")
            await self._detach_upstream()

        voice = message.voice or self._default_voice
        upstream = self._upstream_factory(voice, self)
        self._upstream = upstream

        try:
            await upstream.connect()
        except Exception as e:
            self._log.error("Failed to connect to OpenAI", error=str(e))
            if self._upstream is upstream:
                self._upstream = None
            with contextlib.suppress(Exception):
                await upstream.close()
            await self._send_error(
                ErrorCode.CONNECTION_FAILED, "Failed to start voice session"
            )
            return

        if self._ended or self._upstream is not upstream:
            await upstream.close()
            return

        self._state = SessionState.SESSION_ACTIVE
        self._log.info("OpenAI session started", voice=voice)
        self._audit.emit(
            "voice.session.started",
            connection_id=self.connection_id,
            user_id=self._user_id,
            voice=voice,
        )
        await self._send(SessionReadyFrame(session_id=self.connection_id))
        self._arm_timer()

    async def _handle_audio_chunk(self, message: ClientMessage) -> None:
        if self._upstream is None:
            await self._send_error(ErrorCode.NO_SESSION, "No active session")
            return

        if isinstance(message.audio, str) and message.audio:
            await self._upstream.send_audio(message.audio)

    async def _handle_interrupt(self, message: ClientMessage) -> None:
        if self._upstream is None:
            return
        await self._upstream.interrupt()
        self._log.info("Interrupted assistant")

    async def _handle_session_end(self, message: ClientMessage) -> None:
        await self.terminate(REASON_CLIENT_END)

    async def _detach_upstream(self) -> None:
        upstream, self._upstream = self._upstream, None
        self._cancel_timer()
        if self._state is SessionState.SESSION_ACTIVE:
            self._state = SessionState.AUTHENTICATED
        if upstream is not None:
            await upstream.close()

    # ──────────────────────────────────────────────────────────
    # Upstream Events
    # ──────────────────────────────────────────────────────────

    async def on_audio_delta(self, audio: str, item_id: str) -> None:
        await self._send(AudioChunkFrame(audio=audio, item_id=item_id))

    async def on_audio_done(self, item_id: str) -> None:
        await self._send(AudioDoneFrame(item_id=item_id))

    async def on_transcript_delta(self, text: str, item_id: str) -> None:
        await self._send(TranscriptDeltaFrame(text=text, item_id=item_id))

    async def on_transcript_done(self, text: str, item_id: str) -> None:
        await self._send(TranscriptDoneFrame(text=text, item_id=item_id))

    async def on_user_speech_started(self) -> None:
        await self._send(UserSpeechStartedFrame())

    async def on_user_speech_stopped(self) -> None:
        await self._send(UserSpeechStoppedFrame())

    async def on_error(self, message: str) -> None:
        self._log.error("OpenAI error", error=message)
        await self._send_error(ErrorCode.OPENAI_ERROR, message)

    async def on_close(self) -> None:
        self._log.info("OpenAI connection closed")
        await self.terminate(REASON_UPSTREAM_CLOSED)

    # ──────────────────────────────────────────────────────────
    # Session Timer
    # ──────────────────────────────────────────────────────────

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._expire_session())

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _expire_session(self) -> None:
        # Absolute deadline: activity never re-arms this timer
        await self._sleep(self._session_timeout_s)
        self._log.info("Session timeout reached")
        await self.terminate(REASON_TIMEOUT)

    # ──────────────────────────────────────────────────────────
    # Termination
    # ──────────────────────────────────────────────────────────

    async def terminate(self, reason: str) -> None:
        """Release every resource owned by the connection.

        Idempotent: only the first call has any effect.
        """
        if self._ended:
            return
        self._ended = True
        self._state = SessionState.ENDED

        self._log.info("Closing connection", reason=reason)
        await self._send(SessionEndedFrame(reason=reason))

        self._cancel_timer()

        upstream, self._upstream = self._upstream, None
        if upstream is not None:
            with contextlib.suppress(Exception):
                await upstream.close()

        self._rate_limiter.remove(self.connection_id)

        if self._socket_open():
            with contextlib.suppress(Exception):
                await self._ws.close(code=WS_CLOSE_NORMAL, reason=reason)

        self._audit.emit(
            "voice.session.ended",
            connection_id=self.connection_id,
            user_id=self._user_id,
            reason=reason,
        )
        if self._on_ended is not None:
            self._on_ended(self)

    # ──────────────────────────────────────────────────────────
    # Client Sends
    # ──────────────────────────────────────────────────────────

    def _socket_open(self) -> bool:
        return (
            not self._client_gone
            and self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    async def _send(self, frame: ServerFrame) -> None:
        async with self._send_lock:
            if not self._socket_open():
                return
            try:
                await self._ws.send_text(frame.to_text())
            except (WebSocketDisconnect, RuntimeError) as e:
                self._client_gone = True
                self._log.debug("Send on closed client socket", error=str(e))

    async def _send_error(self, code: ErrorCode, message: str) -> None:
        await self._send(ErrorFrame(code=code, message=message))


__all__ = ["VoiceSession", "SessionState", "UpstreamFactory", "UpstreamSession"]
