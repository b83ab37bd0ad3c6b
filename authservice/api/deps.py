"""API dependencies - service wiring and authentication"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from authservice.config import settings
from authservice.core.cache import CacheStore
from authservice.core.database import SessionLocal
from authservice.core.exceptions import AuthenticationError
from authservice.schemas.user import UserIdentity
from authservice.services.auth_service import AuthService, build_auth_service

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


@lru_cache()
def get_cache() -> CacheStore:
    """Process-wide cache client"""
    return CacheStore.from_url(settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT)


@lru_cache()
def get_auth_service() -> AuthService:
    """Process-wide authentication service"""
    return build_auth_service(settings, SessionLocal, get_cache())


def get_trace_id(request: Request) -> Optional[str]:
    """Request correlation id set by the request-id middleware"""
    return getattr(request.state, "request_id", None)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserIdentity:
    """
    Get current authenticated user from the bearer access token

    Args:
        credentials: HTTP Bearer credentials
        auth_service: Authentication service

    Returns:
        Current user

    Raises:
        AuthenticationError: If token is missing, invalid or the user is gone
    """
    if not credentials:
        raise AuthenticationError("no JWT found")
    return await auth_service.get_current_user(credentials.credentials)
