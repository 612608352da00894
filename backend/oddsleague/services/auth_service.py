import logging
import secrets
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import InvalidTokenError as JWTError

from oddsleague.config import settings

logger = logging.getLogger("oddsleague.auth")

ALGORITHM = "HS256"
ADMIN_COOKIE_NAME = "admin_secret"


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _matches(candidate: Optional[str], secret: str) -> bool:
    return bool(candidate) and secrets.compare_digest(candidate.encode(), secret.encode())


def decode_jwt(token: str) -> dict:
    """Decode an access token issued by the external auth service."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])


async def require_admin(request: Request) -> None:
    """FastAPI dependency: ADMIN_SECRET via admin_secret cookie or Bearer header.

    Open when ADMIN_SECRET is unset (local development).
    """
    secret = settings.ADMIN_SECRET
    if not secret:
        return
    if _matches(request.cookies.get(ADMIN_COOKIE_NAME), secret):
        return
    if _matches(_bearer_token(request), secret):
        return
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
    )


async def require_cron(request: Request) -> None:
    """FastAPI dependency: CRON_SECRET via Bearer header or ?secret= query."""
    secret = settings.CRON_SECRET
    if not secret:
        logger.error("CRON_SECRET is not configured; rejecting cron call")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret not configured.",
        )
    if _matches(_bearer_token(request), secret):
        return
    if _matches(request.query_params.get("secret"), secret):
        return
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
    )


async def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: user id (sub claim) from the Bearer access token."""
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
        )
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not configured; cannot verify access tokens")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication is not configured.",
        )

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )
    return str(user_id)
