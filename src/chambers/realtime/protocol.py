"""
Voice WebSocket Protocol

Message types and frame models for both legs of the voice bridge: the client
socket (``/api/voice``) and the upstream OpenAI Realtime socket.
"""

from enum import Enum
from typing import Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field


class ClientMessageType(str, Enum):
    """Client -> server frame types."""

    AUTH = "auth"
    SESSION_START = "session.start"
    AUDIO_CHUNK = "audio.chunk"
    INTERRUPT = "interrupt"
    SESSION_END = "session.end"


class ServerMessageType(str, Enum):
    """Server -> client frame types."""

    AUTH_SUCCESS = "auth.success"
    SESSION_READY = "session.ready"
    AUDIO_CHUNK = "audio.chunk"
    AUDIO_DONE = "audio.done"
    TRANSCRIPT_DELTA = "transcript.delta"
    TRANSCRIPT_DONE = "transcript.done"
    USER_SPEECH_STARTED = "user.speech_started"
    USER_SPEECH_STOPPED = "user.speech_stopped"
    SESSION_ENDED = "session.ended"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Machine-readable codes carried by ``error`` frames."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_FAILED = "AUTH_FAILED"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    NO_SESSION = "NO_SESSION"
    RATE_LIMIT = "RATE_LIMIT"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    OPENAI_ERROR = "OPENAI_ERROR"
    INVALID_MESSAGE = "INVALID_MESSAGE"


class UpstreamEventType(str, Enum):
    """OpenAI Realtime event types the bridge sends or reacts to."""

    # Server -> upstream
    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_APPEND = "input_audio_buffer.append"
    INPUT_AUDIO_CLEAR = "input_audio_buffer.clear"
    RESPONSE_CANCEL = "response.cancel"

    # Upstream -> server
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    RESPONSE_CREATED = "response.created"
    OUTPUT_ITEM_ADDED = "response.output_item.added"
    AUDIO_DELTA = "response.audio.delta"
    AUDIO_DONE = "response.audio.done"
    TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    TRANSCRIPT_DONE = "response.audio_transcript.done"
    RESPONSE_DONE = "response.done"
    ERROR = "error"
    INPUT_AUDIO_COMMITTED = "input_audio_buffer.committed"
    INPUT_AUDIO_CLEARED = "input_audio_buffer.cleared"
    ITEM_CREATED = "conversation.item.created"
    CONTENT_PART_ADDED = "response.content_part.added"
    CONTENT_PART_DONE = "response.content_part.done"
    INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"


# Acknowledged but not acted on
INFORMATIONAL_UPSTREAM_EVENTS = frozenset(
    {
        UpstreamEventType.SESSION_CREATED.value,
        UpstreamEventType.SESSION_UPDATED.value,
        UpstreamEventType.RESPONSE_CREATED.value,
        UpstreamEventType.INPUT_AUDIO_COMMITTED.value,
        UpstreamEventType.INPUT_AUDIO_CLEARED.value,
        UpstreamEventType.ITEM_CREATED.value,
        UpstreamEventType.CONTENT_PART_ADDED.value,
        UpstreamEventType.CONTENT_PART_DONE.value,
        UpstreamEventType.INPUT_TRANSCRIPTION_COMPLETED.value,
    }
)

UNKNOWN_ITEM_ID = "unknown"


# ══════════════════════════════════════════════════════════════
# Client -> Server
# ══════════════════════════════════════════════════════════════


class ClientMessage(BaseModel):
    """Any inbound frame.

    Only ``type`` is validated here. Payload fields keep whatever JSON value
    the client sent; each handler decides what a wrong-typed value means.
    """

    model_config = ConfigDict(extra="ignore")

    type: str
    token: Any = None
    audio: Any = None
    config: Any = None

    @property
    def voice(self) -> str | None:
        """Voice requested by a session.start frame, if well formed."""
        if not isinstance(self.config, dict):
            return None
        voice = self.config.get("voice")
        return voice if isinstance(voice, str) and voice else None


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Decode one inbound frame.

    Raises orjson.JSONDecodeError or pydantic.ValidationError on malformed input.
    """
    return ClientMessage.model_validate(orjson.loads(raw))


# ══════════════════════════════════════════════════════════════
# Server -> Client
# ══════════════════════════════════════════════════════════════


class ServerFrame(BaseModel):
    """Base outbound frame."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    type: ServerMessageType

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_text(self) -> str:
        return orjson.dumps(self.to_wire()).decode()


class AuthSuccessFrame(ServerFrame):
    type: Literal[ServerMessageType.AUTH_SUCCESS] = ServerMessageType.AUTH_SUCCESS


class SessionReadyFrame(ServerFrame):
    type: Literal[ServerMessageType.SESSION_READY] = ServerMessageType.SESSION_READY
    session_id: str = Field(alias="sessionId")


class AudioChunkFrame(ServerFrame):
    type: Literal[ServerMessageType.AUDIO_CHUNK] = ServerMessageType.AUDIO_CHUNK
    audio: str
    item_id: str = Field(alias="itemId")


class AudioDoneFrame(ServerFrame):
    type: Literal[ServerMessageType.AUDIO_DONE] = ServerMessageType.AUDIO_DONE
    item_id: str = Field(alias="itemId")


class TranscriptDeltaFrame(ServerFrame):
    type: Literal[ServerMessageType.TRANSCRIPT_DELTA] = ServerMessageType.TRANSCRIPT_DELTA
    text: str
    item_id: str = Field(alias="itemId")


class TranscriptDoneFrame(ServerFrame):
    type: Literal[ServerMessageType.TRANSCRIPT_DONE] = ServerMessageType.TRANSCRIPT_DONE
    text: str
    item_id: str = Field(alias="itemId")


class UserSpeechStartedFrame(ServerFrame):
    type: Literal[ServerMessageType.USER_SPEECH_STARTED] = ServerMessageType.USER_SPEECH_STARTED


class UserSpeechStoppedFrame(ServerFrame):
    type: Literal[ServerMessageType.USER_SPEECH_STOPPED] = ServerMessageType.USER_SPEECH_STOPPED


class SessionEndedFrame(ServerFrame):
    type: Literal[ServerMessageType.SESSION_ENDED] = ServerMessageType.SESSION_ENDED
    reason: str


class ErrorFrame(ServerFrame):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    message: str
    code: ErrorCode


# ══════════════════════════════════════════════════════════════
# Upstream Session Configuration
# ══════════════════════════════════════════════════════════════


class TranscriptionConfig(BaseModel):
    model: str = "whisper-1"


class TurnDetectionConfig(BaseModel):
    """Server-side VAD turn detection. Values are fixed for the bridge."""

    type: str = "server_vad"
    threshold: float = 0.5
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 500


class RealtimeSessionConfig(BaseModel):
    """Body of the upstream ``session.update`` event."""

    modalities: list[str] = Field(default_factory=lambda: ["text", "audio"])
    instructions: str
    voice: str
    input_audio_format: str = "pcm16"
    output_audio_format: str = "pcm16"
    input_audio_transcription: TranscriptionConfig = Field(
        default_factory=TranscriptionConfig
    )
    turn_detection: TurnDetectionConfig = Field(default_factory=TurnDetectionConfig)


def session_update_event(config: RealtimeSessionConfig) -> dict[str, Any]:
    return {
        "type": UpstreamEventType.SESSION_UPDATE.value,
        "session": config.model_dump(),
    }
