"""Pydantic schemas for API validation"""

from authservice.schemas.user import (
    UserRegister,
    UserLogin,
    TokenRefresh,
    UserIdentity,
    UserResponse,
    AuthResponse,
    TokenResponse,
)
from authservice.schemas.response import APIResponse, ErrorResponse, HealthResponse

__all__ = [
    "UserRegister", "UserLogin", "TokenRefresh", "UserIdentity", "UserResponse",
    "AuthResponse", "TokenResponse",
    "APIResponse", "ErrorResponse", "HealthResponse",
]
