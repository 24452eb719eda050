"""
Access Token Verification

Verifies the HS256 access tokens issued by the Chambers auth service and
exposes the verifier both to the voice bridge (``verify``) and to HTTP
routes (``BearerAuth`` dependency).
"""

from functools import lru_cache

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chambers.config import settings
from chambers.errors import TokenVerificationError

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Models
# ══════════════════════════════════════════════════════════════


class TokenPayload(BaseModel):
    """Decoded JWT token payload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sub: str | None = None  # User ID
    user_id: str | None = Field(default=None, alias="userId")
    exp: int | None = None
    iat: int | None = None

    @property
    def subject(self) -> str | None:
        return self.sub or self.user_id


# ══════════════════════════════════════════════════════════════
# Verifier
# ══════════════════════════════════════════════════════════════


class TokenVerifier:
    """
    Resolve an access token to the authenticated subject id.

    Usage:
        verifier = TokenVerifier(secret="...")
        user_id = await verifier.verify(token)
    """

    def __init__(
        self,
        secret: str | None = None,
        algorithms: list[str] | None = None,
    ):
        self.secret = settings.jwt_secret if secret is None else secret
        self.algorithms = algorithms or settings.jwt_algorithms

    def decode(self, token: str) -> TokenPayload:
        """Verify signature and expiry, returning the payload."""
        if not self.secret:
            # No secret configured: nothing can be trusted
            raise TokenVerificationError("Token verification is not configured")

        try:
            claims = jwt.decode(token, self.secret, algorithms=self.algorithms)
            payload = TokenPayload.model_validate(claims)
        except (JWTError, ValidationError) as e:
            logger.warning("JWT verification failed", error=str(e))
            raise TokenVerificationError("Invalid or expired token") from e

        if not payload.subject:
            raise TokenVerificationError("Token has no subject")
        return payload

    async def verify(self, token: str) -> str:
        """Return the subject id for ``token``.

        Raises:
            TokenVerificationError: the token is invalid, expired, or has no subject.
        """
        return self.decode(token).subject


@lru_cache
def get_token_verifier() -> TokenVerifier:
    """Get cached verifier built from settings."""
    return TokenVerifier()


# ══════════════════════════════════════════════════════════════
# FastAPI Dependencies
# ══════════════════════════════════════════════════════════════


class BearerAuth:
    """
    FastAPI dependency for bearer token validation.

    Usage:
        @app.get("/protected")
        async def protected_route(user: TokenPayload = Depends(BearerAuth())):
            return {"user_id": user.subject}
    """

    async def __call__(
        self,
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(HTTPBearer()),
        verifier: TokenVerifier = Depends(get_token_verifier),
    ) -> TokenPayload:
        try:
            payload = verifier.decode(credentials.credentials)
        except TokenVerificationError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
            )

        request.state.user_id = payload.subject
        return payload


auth_required = BearerAuth()


async def get_current_user(
    payload: TokenPayload = Depends(auth_required),
) -> TokenPayload:
    """Get the current authenticated user."""
    return payload


__all__ = [
    "TokenPayload",
    "TokenVerifier",
    "BearerAuth",
    "auth_required",
    "get_current_user",
    "get_token_verifier",
]
