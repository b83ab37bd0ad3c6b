"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


INVALID_CREDENTIALS_MESSAGE = "email or password is invalid"
USER_ALREADY_EXISTS_MESSAGE = "username or email already exists"
TOKEN_INVALID_MESSAGE = "token is invalid or expired"


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Caller could not be authenticated"""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Unknown username or wrong password (indistinguishable on purpose)"""
    def __init__(self):
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


class TokenInvalidError(AuthenticationError):
    """Refresh token rejected for any reason"""
    def __init__(self):
        super().__init__(TOKEN_INVALID_MESSAGE)


# Conflict Errors
class ConflictError(BaseAPIException):
    """Username or email already taken; surfaced as 401 like other auth failures"""
    def __init__(self, message: str = USER_ALREADY_EXISTS_MESSAGE):
        super().__init__(message, status_code=401)


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


# System Errors
class InternalError(BaseAPIException):
    """Storage failure or unexpected empty persistence result"""
    def __init__(self, message: str = "internal server error"):
        super().__init__(message, status_code=500)


# Token decoding errors. These never leave the service layer as-is.
class TokenError(Exception):
    """Base class for token decoding failures"""


class MalformedTokenError(TokenError):
    """Token is not a structurally valid signed token"""


class InvalidSignatureError(TokenError):
    """Token signature does not match the key"""


class ExpiredTokenError(TokenError):
    """Current time is at or after the token expiry"""
