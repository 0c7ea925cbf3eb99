"""
Authentication Helpers

Verifies access tokens issued by the hosted auth backend and resolves the
directory user behind them. Sign-in itself happens on the auth backend.
"""
import jwt
import logging
from typing import AsyncIterator, Optional
from uuid import UUID

from fastapi import HTTPException, Depends, Header

from ..config import Config
from ..models.user import User
from ..services.engine_service import get_engine_service, EngineService
from ..services.session import ChatSession

logger = logging.getLogger("chatcore.routes.auth")


def get_engine() -> EngineService:
    return get_engine_service()


def verify_token(token: str) -> Optional[dict]:
    """Verify and decode JWT token; None if invalid or expired"""
    try:
        payload = jwt.decode(
            token,
            Config.JWT_SECRET,
            algorithms=[Config.JWT_ALGORITHM],
            audience=Config.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    if not payload.get("sub"):
        return None
    return payload


async def resolve_user(token: Optional[str], engine: EngineService) -> Optional[User]:
    """Token -> active directory user, or None"""
    payload = verify_token(token) if token else None
    if not payload:
        return None
    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        return None
    user = await engine.get_user(user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    authorization: str = Header(None),
    engine: EngineService = Depends(get_engine),
) -> User:
    """Dependency to get current authenticated user"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    # Expect "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    user = await resolve_user(parts[1], engine)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


async def get_session(
    user: User = Depends(get_current_user),
    engine: EngineService = Depends(get_engine),
) -> AsyncIterator[ChatSession]:
    """Request-scoped chat session"""
    session = engine.open_session(user)
    try:
        yield session
    finally:
        session.close()
