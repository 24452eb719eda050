"""
OpenAI Realtime Sessions Integration

Mints short-lived client secrets from the OpenAI Realtime sessions endpoint
so clients can connect to the speech API directly over WebRTC.
"""

from typing import Any

import httpx
import structlog
from fastapi import Request
from pydantic import BaseModel

from chambers.config import Settings, settings as default_settings
from chambers.errors import UpstreamNotConfiguredError, UpstreamRequestError
from chambers.realtime.protocol import RealtimeSessionConfig, TranscriptionConfig

logger = structlog.get_logger()


class EphemeralSession(BaseModel):
    """Client-facing part of a created realtime session."""

    client_secret: dict[str, Any] | None = None
    expires_at: int | None = None
    session_id: str | None = None


class RealtimeSessionsClient:
    """
    HTTP client for the OpenAI Realtime sessions endpoint.

    Usage:
        client = RealtimeSessionsClient()
        session = await client.create_session()
    """

    def __init__(self, settings: Settings | None = None, timeout: float = 30.0):
        self.settings = settings or default_settings
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    def session_request(self) -> dict[str, Any]:
        """Body for the session creation request."""
        config = RealtimeSessionConfig(
            instructions=self.settings.ephemeral_system_prompt,
            voice=self.settings.realtime_default_voice,
            input_audio_transcription=TranscriptionConfig(
                model=self.settings.realtime_transcription_model
            ),
        )
        return {
            "model": self.settings.realtime_model,
            "voice": config.voice,
            "instructions": config.instructions,
            "input_audio_transcription": config.input_audio_transcription.model_dump(),
            "turn_detection": config.turn_detection.model_dump(),
        }

    async def create_session(self) -> EphemeralSession:
        """Create an upstream session and return its ephemeral secret.

        Raises:
            UpstreamNotConfiguredError: no API key configured.
            UpstreamRequestError: the endpoint returned a non-success status.
            httpx.HTTPError: transport failure.
        """
        if not self.configured:
            raise UpstreamNotConfiguredError("OPENAI_API_KEY is not configured")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.settings.openai_realtime_sessions_url,
                headers={
                    "Authorization": f"Bearer {self.settings.openai_api_key}",
                    "Content-Type": "application/json",
                },
                json=self.session_request(),
            )

        if response.is_error:
            logger.error(
                "OpenAI Realtime session creation failed",
                status=response.status_code,
                error=response.text,
            )
            raise UpstreamRequestError(response.status_code, response.text)

        data = response.json()
        return EphemeralSession(
            client_secret=data.get("client_secret"),
            expires_at=data.get("expires_at"),
            session_id=data.get("id"),
        )


def get_sessions_client(request: Request) -> RealtimeSessionsClient:
    """FastAPI dependency: sessions client bound to the application's settings."""
    return RealtimeSessionsClient(request.app.state.settings)


__all__ = [
    "EphemeralSession",
    "RealtimeSessionsClient",
    "get_sessions_client",
]
