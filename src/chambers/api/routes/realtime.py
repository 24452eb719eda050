"""
Realtime HTTP Routes

Status and ephemeral-token endpoints for the OpenAI Realtime voice feature.
"""

from typing import Any

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from chambers.errors import UpstreamNotConfiguredError, UpstreamRequestError
from chambers.integrations.auth import TokenPayload, get_current_user
from chambers.integrations.openai import (
    EphemeralSession,
    RealtimeSessionsClient,
    get_sessions_client,
)

logger = structlog.get_logger()

router = APIRouter()


@router.get("/status")
async def realtime_status(
    request: Request,
    user: TokenPayload = Depends(get_current_user),
) -> dict[str, Any]:
    """Whether the voice feature is available."""
    settings = request.app.state.settings
    return {
        "available": settings.realtime_available,
        "model": settings.realtime_model,
        "voice": settings.realtime_default_voice,
    }


@router.post("/token", response_model=EphemeralSession)
async def create_realtime_token(
    request: Request,
    user: TokenPayload = Depends(get_current_user),
    client: RealtimeSessionsClient = Depends(get_sessions_client),
) -> EphemeralSession:
    """
    Create an ephemeral key for a direct WebRTC connection to OpenAI Realtime.
    """
    try:
        session = await client.create_session()
    except UpstreamNotConfiguredError:
        logger.error("OPENAI_API_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Voice feature is not configured",
        )
    except UpstreamRequestError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create voice session",
        )
    except httpx.HTTPError as e:
        logger.error("Error creating Realtime session", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create voice session",
        )

    request.app.state.voice_bridge.audit.emit(
        "realtime.session.create",
        user_id=user.subject,
        target_type="REALTIME_SESSION",
    )
    logger.info("Created Realtime session", user_id=user.subject)

    return session


@router.get("/connections")
async def get_connections(
    request: Request,
    user: TokenPayload = Depends(get_current_user),
) -> dict[str, Any]:
    """Get voice bridge statistics."""
    return request.app.state.voice_bridge.get_stats()
