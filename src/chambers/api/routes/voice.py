"""
Voice WebSocket Route

Real-time voice conversation bridged to the OpenAI Realtime API.

Protocol:
1. Client connects to /api/voice
2. Client sends {"type": "auth", "token": "<access token>"}
3. Server responds with auth.success
4. Client sends session.start, server responds with session.ready
5. Client streams audio.chunk frames; server streams audio, transcripts
   and speech boundary events back
6. Client sends session.end or disconnects
"""

from fastapi import APIRouter, WebSocket

router = APIRouter()


@router.websocket("/voice")
async def voice_websocket(websocket: WebSocket) -> None:
    """Serve one voice connection through the application's bridge."""
    bridge = websocket.app.state.voice_bridge
    await bridge.handle(websocket)
