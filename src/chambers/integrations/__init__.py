"""External service integrations."""

from .auth import BearerAuth, TokenPayload, TokenVerifier, get_current_user
from .openai import RealtimeSessionsClient, get_sessions_client

__all__ = [
    "BearerAuth",
    "TokenPayload",
    "TokenVerifier",
    "get_current_user",
    "RealtimeSessionsClient",
    "get_sessions_client",
]
