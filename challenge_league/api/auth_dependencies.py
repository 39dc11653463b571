"""
Authentication dependencies for FastAPI routes.
"""

import hmac
import logging
import os
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.database.db import get_db_session
from challenge_league.services import auth_service, data_service

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Minimum cron secret length enforced in production
MIN_CRON_SECRET_LENGTH = 32


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary

    Raises:
        HTTPException: If token is invalid or user not found
    """
    token = credentials.credentials

    # Verify token
    payload = auth_service.verify_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Get user_id from token
    user_id = payload.get("user_id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Get user from database
    user = await data_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def make_require_league_owner():
    """Require the authenticated user to own the league in the path (404 if it does not exist)."""

    async def _dep(
        league_id: int,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        league = await data_service.get_league_by_id(session, league_id)
        if league is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="League not found")
        if league.owner_id != user["id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only league owners can manage prompts and phases",
            )
        return user

    return _dep


def make_require_league_member():
    """Require the authenticated user to be an active member (or the owner) of the league."""

    async def _dep(
        league_id: int,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        league = await data_service.get_league_by_id(session, league_id)
        if league is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="League not found")
        if league.owner_id == user["id"]:
            return user
        if not await data_service.is_active_league_member(session, league_id, user["id"]):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="League membership required"
            )
        return user

    return _dep


async def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """
    Require `Authorization: Bearer <CRON_SECRET>` on cron endpoints.

    Raises:
        HTTPException: 500 if the secret is missing (or too short in
            production), 401 if the header is missing, malformed or wrong
    """
    cron_secret = os.getenv("CRON_SECRET")
    if not cron_secret:
        logger.error("CRON_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )

    if os.getenv("ENV", "").lower() == "production" and len(cron_secret) < MIN_CRON_SECRET_LENGTH:
        logger.error(f"CRON_SECRET must be at least {MIN_CRON_SECRET_LENGTH} characters in production")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    provided = authorization[len("Bearer "):]
    if not hmac.compare_digest(provided.encode(), cron_secret.encode()):
        logger.warning("Rejected cron request with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
