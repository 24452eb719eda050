"""
Chambers Exceptions

Error types raised inside the voice bridge and its integrations. The HTTP
and WebSocket layers translate them into status codes and error frames.
"""


class ChambersError(Exception):
    """Base class for Chambers errors."""


class TokenVerificationError(ChambersError):
    """Raised when an access token is missing, malformed, or invalid."""


class UpstreamNotConfiguredError(ChambersError):
    """Raised when no OpenAI credential is configured."""


class UpstreamConnectionError(ChambersError):
    """Raised when the upstream realtime connection cannot be opened."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class UpstreamRequestError(ChambersError):
    """Raised when an upstream HTTP request returns a non-success status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"Upstream request failed with status {status_code}")
        self.status_code = status_code
        self.body = body


__all__ = [
    "ChambersError",
    "TokenVerificationError",
    "UpstreamNotConfiguredError",
    "UpstreamConnectionError",
    "UpstreamRequestError",
]
