"""
Chambers Realtime Module

WebSocket voice bridge between app clients and the OpenAI Realtime API.
"""

from .bridge import VoiceBridge
from .session import VoiceSession, SessionState
from .upstream import RealtimeSpeechClient, UpstreamConfig, UpstreamEventSink
from .rate_limit import FixedWindowRateLimiter
from .audit import AuditSink, StructlogAuditSink
from .protocol import (
    ClientMessageType,
    ServerMessageType,
    ErrorCode,
    UpstreamEventType,
)

__all__ = [
    # Connection management
    "VoiceBridge",
    "VoiceSession",
    "SessionState",
    # Upstream
    "RealtimeSpeechClient",
    "UpstreamConfig",
    "UpstreamEventSink",
    # Limits and audit
    "FixedWindowRateLimiter",
    "AuditSink",
    "StructlogAuditSink",
    # Protocol
    "ClientMessageType",
    "ServerMessageType",
    "ErrorCode",
    "UpstreamEventType",
]
