"""
OpenAI Realtime Client

Owns one outbound WebSocket to the OpenAI Realtime API. Translates the
session configuration into a ``session.update`` handshake, decodes inbound
events into calls on an :class:`UpstreamEventSink`, and offers audio-send,
interrupt and close operations.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import orjson
import structlog
import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from chambers.errors import UpstreamConnectionError

from .protocol import (
    INFORMATIONAL_UPSTREAM_EVENTS,
    UNKNOWN_ITEM_ID,
    RealtimeSessionConfig,
    TranscriptionConfig,
    UpstreamEventType,
    session_update_event,
)

logger = structlog.get_logger()


class UpstreamEventSink(Protocol):
    """Receiver for decoded upstream events."""

    async def on_audio_delta(self, audio: str, item_id: str) -> None: ...

    async def on_audio_done(self, item_id: str) -> None: ...

    async def on_transcript_delta(self, text: str, item_id: str) -> None: ...

    async def on_transcript_done(self, text: str, item_id: str) -> None: ...

    async def on_user_speech_started(self) -> None: ...

    async def on_user_speech_stopped(self) -> None: ...

    async def on_error(self, message: str) -> None: ...

    async def on_close(self) -> None: ...


@dataclass
class UpstreamConfig:
    """Connection parameters for one upstream session."""

    api_key: str
    model: str
    instructions: str
    voice: str
    url: str = "wss://api.openai.com/v1/realtime"
    transcription_model: str = "whisper-1"
    connect_timeout_s: float = 10.0

    @property
    def uri(self) -> str:
        return f"{self.url}?model={self.model}"

    def session_config(self) -> RealtimeSessionConfig:
        return RealtimeSessionConfig(
            instructions=self.instructions,
            voice=self.voice,
            input_audio_transcription=TranscriptionConfig(model=self.transcription_model),
        )


class RealtimeSpeechClient:
    """
    One upstream speech-to-speech session.

    Usage:
        client = RealtimeSpeechClient(config, sink)
        await client.connect()
        await client.send_audio(b64_chunk)
        await client.close()
    """

    def __init__(
        self,
        config: UpstreamConfig,
        sink: UpstreamEventSink,
        *,
        connect_fn: Callable[..., Any] | None = None,
    ) -> None:
        self.config = config
        self._sink = sink
        self._connect_fn = connect_fn or websockets.connect
        self._ws: Any | None = None
        self._recv_task: asyncio.Task | None = None
        self._connected = False
        self._closing = False
        self._current_item_id: str | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def voice(self) -> str:
        return self.config.voice

    @property
    def current_item_id(self) -> str | None:
        return self._current_item_id

    # ──────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the upstream socket and send the session configuration.

        Raises:
            UpstreamConnectionError: the handshake failed or did not complete
                within the connect timeout.
        """
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        async def _open() -> Any:
            return await self._connect_fn(
                self.config.uri, additional_headers=headers, max_size=None
            )

        try:
            self._ws = await asyncio.wait_for(
                _open(), timeout=self.config.connect_timeout_s
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "OpenAI Realtime connect timed out",
                model=self.config.model,
                timeout_s=self.config.connect_timeout_s,
            )
            raise UpstreamConnectionError("Connection timeout", timed_out=True) from e
        except (OSError, WebSocketException) as e:
            logger.warning(
                "OpenAI Realtime connect failed",
                model=self.config.model,
                error=str(e),
            )
            raise UpstreamConnectionError(str(e)) from e

        if self._closing:
            # close() raced the handshake
            with contextlib.suppress(Exception):
                await self._ws.close()
            self._ws = None
            raise UpstreamConnectionError("Connection closed during handshake")

        self._connected = True
        await self._send(session_update_event(self.config.session_config()))
        self._recv_task = asyncio.create_task(self._receive_loop())

        logger.info(
            "OpenAI Realtime connected",
            model=self.config.model,
            voice=self.config.voice,
        )

    async def close(self) -> None:
        """Close the upstream socket. Safe to call more than once."""
        self._closing = True
        self._connected = False

        ws, self._ws = self._ws, None
        task, self._recv_task = self._recv_task, None

        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

    # ──────────────────────────────────────────────────────────
    # Outbound
    # ──────────────────────────────────────────────────────────

    async def send_audio(self, audio: str) -> None:
        """Append base64 PCM16 audio to the upstream input buffer."""
        if not self._connected:
            return
        await self._send(
            {"type": UpstreamEventType.INPUT_AUDIO_APPEND.value, "audio": audio}
        )

    async def interrupt(self) -> None:
        """Cancel the in-flight response, then clear buffered input."""
        if not self._connected:
            return
        await self._send({"type": UpstreamEventType.RESPONSE_CANCEL.value})
        await self._send({"type": UpstreamEventType.INPUT_AUDIO_CLEAR.value})

    async def _send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.send(orjson.dumps(message).decode())
        except ConnectionClosed:
            logger.debug(
                "Dropped upstream send on closed connection",
                event_type=message.get("type"),
            )

    # ──────────────────────────────────────────────────────────
    # Inbound
    # ──────────────────────────────────────────────────────────

    async def _receive_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                await self.handle_message(raw)
        except ConnectionClosedError as e:
            if not self._closing:
                logger.warning("OpenAI Realtime connection lost", error=str(e))
                await self._sink.on_error("Upstream connection lost")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._closing:
                logger.error("OpenAI Realtime receive failed", error=str(e))
                await self._sink.on_error("Upstream connection lost")

        self._connected = False
        if not self._closing:
            logger.info("OpenAI Realtime connection closed by remote")
            await self._sink.on_close()

    def _resolve_item_id(self, message: dict[str, Any]) -> str:
        item_id = message.get("item_id")
        if not isinstance(item_id, str):
            item_id = None
        return item_id or self._current_item_id or UNKNOWN_ITEM_ID

    async def handle_message(self, raw: str | bytes) -> None:
        """Decode one upstream event and dispatch it to the sink."""
        try:
            message = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.error("Error parsing OpenAI message", error=str(e))
            return

        if not isinstance(message, dict):
            logger.error("Unexpected OpenAI message shape", kind=type(message).__name__)
            return

        try:
            await self._dispatch(message)
        except Exception as e:
            logger.error(
                "Error handling OpenAI message",
                message_type=message.get("type"),
                error=str(e),
            )

    async def _dispatch(self, message: dict[str, Any]) -> None:
        msg_type = message.get("type")

        if msg_type in INFORMATIONAL_UPSTREAM_EVENTS:
            return

        if msg_type == UpstreamEventType.SPEECH_STARTED.value:
            await self._sink.on_user_speech_started()

        elif msg_type == UpstreamEventType.SPEECH_STOPPED.value:
            await self._sink.on_user_speech_stopped()

        elif msg_type == UpstreamEventType.OUTPUT_ITEM_ADDED.value:
            item = message.get("item")
            if isinstance(item, dict) and item.get("type") == "message":
                item_id = item.get("id")
                self._current_item_id = item_id if isinstance(item_id, str) else None

        elif msg_type == UpstreamEventType.AUDIO_DELTA.value:
            if message.get("delta"):
                await self._sink.on_audio_delta(
                    message["delta"], self._resolve_item_id(message)
                )

        elif msg_type == UpstreamEventType.AUDIO_DONE.value:
            await self._sink.on_audio_done(self._resolve_item_id(message))

        elif msg_type == UpstreamEventType.TRANSCRIPT_DELTA.value:
            if message.get("delta"):
                await self._sink.on_transcript_delta(
                    message["delta"], self._resolve_item_id(message)
                )

        elif msg_type == UpstreamEventType.TRANSCRIPT_DONE.value:
            if message.get("transcript"):
                await self._sink.on_transcript_done(
                    message["transcript"], self._resolve_item_id(message)
                )

        elif msg_type == UpstreamEventType.RESPONSE_DONE.value:
            self._current_item_id = None

        elif msg_type == UpstreamEventType.ERROR.value:
            error = message.get("error")
            detail = error.get("message") if isinstance(error, dict) else None
            await self._sink.on_error(detail or "Unknown OpenAI error")

        else:
            logger.info("Unknown OpenAI message type", message_type=msg_type)


__all__ = ["RealtimeSpeechClient", "UpstreamConfig", "UpstreamEventSink"]
