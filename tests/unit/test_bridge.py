"""
Unit Tests for Voice Bridge

Tests connection bookkeeping, shutdown and the OpenAI upstream factory.
"""

import asyncio

import pytest

from chambers.realtime.bridge import VoiceBridge, openai_upstream_factory
from chambers.realtime.upstream import RealtimeSpeechClient


@pytest.fixture
def bridge(test_settings, verifier, rate_limiter, upstreams, audit) -> VoiceBridge:
    return VoiceBridge(
        test_settings,
        verifier=verifier,
        upstream_factory=upstreams,
        rate_limiter=rate_limiter,
        audit=audit,
    )


class TestVoiceBridge:
    """Test VoiceBridge."""

    @pytest.mark.asyncio
    async def test_handle_accepts_and_forgets(self, bridge, fake_ws, rate_limiter):
        """Test a handled connection is tracked until it ends."""
        fake_ws.feed({"type": "auth", "token": "valid-token"})
        fake_ws.feed({"type": "session.start"})
        fake_ws.feed({"type": "session.end"})

        await asyncio.wait_for(bridge.handle(fake_ws), timeout=1)

        assert fake_ws.accepted
        assert fake_ws.close_calls == [(1000, "Client requested end")]
        assert bridge.active_connection_count == 0
        assert len(rate_limiter) == 0

    @pytest.mark.asyncio
    async def test_stats(self, bridge, make_ws):
        """Test connection and session counts."""
        first = bridge.create_session(make_ws())
        bridge.create_session(make_ws())
        await first.handle_frame('{"type": "auth", "token": "valid-token"}')
        await first.handle_frame('{"type": "session.start"}')

        assert bridge.get_stats() == {
            "active_connections": 2,
            "active_sessions": 1,
            "rate_limit_records": 2,
        }
        assert bridge.get_session(first.connection_id) is first

        await bridge.shutdown()

    @pytest.mark.asyncio
    async def test_connection_ids_unique(self, bridge, make_ws):
        """Test each connection gets its own id."""
        first = bridge.create_session(make_ws())
        second = bridge.create_session(make_ws())

        assert first.connection_id != second.connection_id
        await bridge.shutdown()

    @pytest.mark.asyncio
    async def test_session_forgotten_when_ended(self, bridge, make_ws):
        """Test a session ending on its own leaves the registry."""
        session = bridge.create_session(make_ws())

        await session.handle_frame('{"type": "session.end"}')

        assert bridge.get_session(session.connection_id) is None

    @pytest.mark.asyncio
    async def test_shutdown(self, bridge, make_ws, upstreams, rate_limiter):
        """Test shutdown ends every connection."""
        sockets = [make_ws(), make_ws()]
        sessions = [bridge.create_session(ws) for ws in sockets]
        await sessions[0].handle_frame('{"type": "auth", "token": "valid-token"}')
        await sessions[0].handle_frame('{"type": "session.start"}')

        await bridge.shutdown()

        for ws in sockets:
            assert ws.frames("session.ended") == [
                {"type": "session.ended", "reason": "Server shutting down"}
            ]
        assert upstreams.last.closed
        assert bridge.active_connection_count == 0
        assert len(rate_limiter) == 0


class TestOpenAIUpstreamFactory:
    """Test openai_upstream_factory."""

    def test_builds_client_from_settings(self, test_settings):
        """Test the factory applies settings and the requested voice."""
        factory = openai_upstream_factory(test_settings)

        client = factory("verse", object())

        assert isinstance(client, RealtimeSpeechClient)
        assert client.voice == "verse"
        assert client.config.api_key == "sk-test"
        assert client.config.model == test_settings.realtime_model
        assert client.config.url == "wss://openai.test/v1/realtime"
        assert client.config.connect_timeout_s == 10.0
        assert client.config.instructions == test_settings.realtime_system_prompt
        assert not client.connected
