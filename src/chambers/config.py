"""
Chambers Configuration Management

Centralized configuration using pydantic-settings with environment variable support.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

REALTIME_SYSTEM_PROMPT = """You are a friendly voice companion in Chambers, a wellness app for judges. This is a casual voice conversation - keep it natural and conversational.

VOICE STYLE:
- Speak naturally like a supportive friend
- Keep responses SHORT - aim for 5-10 seconds of speech
- One thought at a time, one question at a time
- Use contractions (I'm, you're, that's)
- Brief confirmations (mm-hmm, got it, I see)
- Avoid starting every response with "Sure!" or "Absolutely!"
- Never say "As an AI" or "I'm just a language model"

CONVERSATION FLOW:
- Listen more than you speak
- Ask follow-up questions to show you're engaged
- When someone shares something heavy, acknowledge it first before offering perspective
- For troubleshooting: short, direct steps
- For brainstorming: one idea at a time, ask if they want more

TOPICS YOU'RE GREAT AT:
- Stress from difficult cases
- Work-life balance
- Processing emotions from court
- Quick mindfulness or breathing guidance
- General encouragement and perspective

BOUNDARIES:
- Don't give legal advice
- If someone seems in crisis, gently suggest professional support
- Keep it supportive, not therapeutic

Remember: Judges often feel isolated. Be the thoughtful friend they can talk to."""

EPHEMERAL_SYSTEM_PROMPT = """You are a supportive AI companion inside Chambers, a private wellness app designed for judges and legal professionals who carry significant emotional weight in their work.

YOUR ROLE:
You are a warm, thoughtful voice companion who can:
- Listen and reflect on what users share
- Offer encouragement, perspective, and support
- Share uplifting thoughts when asked
- Help with stress relief and emotional processing
- Be a compassionate listener

TONE:
- Warm but professional
- Calm and grounded
- Supportive without being patronizing
- Concise in responses (this is voice, keep it natural and not too long)
- Appropriate for accomplished professionals

BOUNDARIES:
- You are not a licensed therapist or medical professional
- Do not diagnose mental health conditions
- Do not comment on specific legal cases or rulings
- If someone appears to be in crisis, gently suggest professional resources
- Respect privacy - don't ask for identifying details about cases

IMPORTANT:
- Keep responses concise since this is voice conversation
- Be genuinely helpful and responsive
- Ask clarifying questions when needed
- Match the user's emotional tone"""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ══════════════════════════════════════════════════════════════
    # Application
    # ══════════════════════════════════════════════════════════════
    app_name: str = "Chambers"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    # ══════════════════════════════════════════════════════════════
    # Authentication (JWT issued by the Chambers auth service)
    # ══════════════════════════════════════════════════════════════
    jwt_secret: str = Field(default="")
    jwt_algorithms: Annotated[list[str], NoDecode] = ["HS256"]

    # ══════════════════════════════════════════════════════════════
    # OpenAI Realtime
    # ══════════════════════════════════════════════════════════════
    openai_api_key: str = ""
    openai_realtime_url: str = "wss://api.openai.com/v1/realtime"
    openai_realtime_sessions_url: str = "https://api.openai.com/v1/realtime/sessions"
    realtime_model: str = "gpt-4o-realtime-preview-2024-12-17"
    realtime_default_voice: str = "sage"
    realtime_transcription_model: str = "whisper-1"
    realtime_system_prompt: str = REALTIME_SYSTEM_PROMPT
    ephemeral_system_prompt: str = EPHEMERAL_SYSTEM_PROMPT

    # ══════════════════════════════════════════════════════════════
    # Voice Bridge Limits
    # ══════════════════════════════════════════════════════════════
    voice_rate_limit_per_second: int = 10
    voice_rate_limit_window_seconds: float = 1.0
    voice_session_timeout_ms: int = 600_000  # 10 minutes, absolute
    voice_connect_timeout_ms: int = 10_000

    @field_validator("cors_origins", "jwt_algorithms", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def realtime_available(self) -> bool:
        """Whether an upstream credential is configured."""
        return bool(self.openai_api_key)

    @property
    def voice_session_timeout_s(self) -> float:
        return self.voice_session_timeout_ms / 1000

    @property
    def voice_connect_timeout_s(self) -> float:
        return self.voice_connect_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
