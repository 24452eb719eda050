"""
Pytest Configuration and Fixtures

Shared fixtures and test doubles for unit and integration tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import orjson
import pytest
from fastapi.websockets import WebSocketState
from jose import jwt

from chambers.config import Settings
from chambers.errors import TokenVerificationError, UpstreamConnectionError
from chambers.realtime.audit import MemoryAuditSink
from chambers.realtime.rate_limit import FixedWindowRateLimiter

TEST_JWT_SECRET = "test-secret-that-is-at-least-32-characters"
VALID_TOKEN = "valid-token"
TEST_USER_ID = "user-123"


# ══════════════════════════════════════════════════════════════
# Settings Fixtures
# ══════════════════════════════════════════════════════════════


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with a configured secret and upstream key."""
    return Settings(
        app_env="test",
        debug=True,
        jwt_secret=TEST_JWT_SECRET,
        openai_api_key="sk-test",
        openai_realtime_sessions_url="https://openai.test/v1/realtime/sessions",
        openai_realtime_url="wss://openai.test/v1/realtime",
    )


@pytest.fixture
def make_token():
    """Factory for signed access tokens."""

    def _make(
        sub: str | None = TEST_USER_ID,
        secret: str = TEST_JWT_SECRET,
        expires_in: timedelta = timedelta(hours=1),
        **claims: Any,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "iat": int(now.timestamp()),
            "exp": int((now + expires_in).timestamp()),
            **claims,
        }
        if sub is not None:
            payload["sub"] = sub
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


# ══════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.close_calls: list[tuple[int, str | None]] = []
        self.accepted = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    # Test side

    def feed(self, frame: dict[str, Any] | str) -> None:
        text = frame if isinstance(frame, str) else orjson.dumps(frame).decode()
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def feed_bytes(self, data: bytes) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": 1001})

    def frames(self, frame_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame["type"] == frame_type]

    def errors(self) -> list[str]:
        return [frame["code"] for frame in self.frames("error")]

    # Application side

    async def accept(self) -> None:
        self.accepted = True

    async def receive(self) -> dict[str, Any]:
        message = await self._inbox.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_text(self, text: str) -> None:
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot send once the socket is closed")
        self.sent.append(orjson.loads(text))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_calls.append((code, reason))
        self.application_state = WebSocketState.DISCONNECTED
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": code})


class FakeUpstream:
    """Upstream session double that records calls into a shared log."""

    def __init__(self, index: int, voice: str, sink: Any, log: list, fail: bool) -> None:
        self.index = index
        self.voice = voice
        self.sink = sink
        self.log = log
        self.fail = fail
        self.audio: list[str] = []
        self.interrupts = 0
        self.closed = False

    async def connect(self) -> None:
        self.log.append(("connect", self.index))
        if self.fail:
            raise UpstreamConnectionError("Connection timeout", timed_out=True)

    async def send_audio(self, audio: str) -> None:
        self.audio.append(audio)

    async def interrupt(self) -> None:
        self.interrupts += 1

    async def close(self) -> None:
        self.log.append(("close", self.index))
        self.closed = True


class UpstreamRecorder:
    """Upstream factory that builds :class:`FakeUpstream` instances."""

    def __init__(self) -> None:
        self.instances: list[FakeUpstream] = []
        self.log: list[tuple[str, int]] = []
        self.fail_next = False

    def __call__(self, voice: str, sink: Any) -> FakeUpstream:
        self.log.append(("create", len(self.instances)))
        upstream = FakeUpstream(len(self.instances), voice, sink, self.log, self.fail_next)
        self.fail_next = False
        self.instances.append(upstream)
        return upstream

    @property
    def last(self) -> FakeUpstream:
        return self.instances[-1]


class FakeVerifier:
    """Accepts only :data:`VALID_TOKEN`."""

    async def verify(self, token: str) -> str:
        if token != VALID_TOKEN:
            raise TokenVerificationError("Invalid or expired token")
        return TEST_USER_ID


class ManualClock:
    """Settable monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualSleep:
    """Sleep replacement that only returns when the test releases it."""

    def __init__(self) -> None:
        self.requested: list[float] = []
        self._release = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.requested.append(seconds)
        await self._release.wait()

    def fire(self) -> None:
        self._release.set()


# ══════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def make_ws():
    """Factory for additional client sockets."""
    return FakeWebSocket


@pytest.fixture
def upstreams() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def rate_limiter(clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(limit=10, window_seconds=1.0, now_fn=clock)


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()
