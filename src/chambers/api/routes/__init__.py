"""API Route modules."""

from . import health, realtime, voice

__all__ = ["health", "realtime", "voice"]
