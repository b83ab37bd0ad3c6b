"""Authentication routes"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status

from authservice.api.deps import get_auth_service, get_current_user, get_trace_id
from authservice.config import settings
from authservice.core.exceptions import AuthenticationError, BaseAPIException, ValidationError
from authservice.schemas.response import APIResponse
from authservice.schemas.user import (
    TokenRefresh,
    UserIdentity,
    UserLogin,
    UserRegister,
    UserResponse,
)
from authservice.services.auth_service import AuthService

router = APIRouter()


def _resolve_refresh_token(
    body: Optional[TokenRefresh],
    request: Request,
    missing: BaseAPIException,
) -> str:
    """Refresh token from the body, falling back to the refresh cookie"""
    if body and body.refresh_token and body.refresh_token.strip():
        return body.refresh_token
    cookie_token = request.cookies.get(settings.REFRESH_TOKEN_COOKIE_NAME)
    if cookie_token:
        return cookie_token
    raise missing


def _set_token_cookie(response: Response, key: str, token: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        path="/",
    )


@router.post("/register", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user: UserRegister,
    trace_id: Optional[str] = Depends(get_trace_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Register endpoint - create a new user

    Returns:
        Email of the registered user
    """
    email = await auth_service.register(user, trace_id=trace_id)
    return APIResponse(message="user registered successfully", data=email)


@router.post("/login", response_model=APIResponse, status_code=status.HTTP_200_OK)
async def login(
    credentials: UserLogin,
    response: Response,
    trace_id: Optional[str] = Depends(get_trace_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Login endpoint - authenticate user and return an access/refresh token pair

    Both tokens are also set as http-only cookies.
    """
    tokens = await auth_service.authenticate(credentials, trace_id=trace_id)

    _set_token_cookie(
        response, settings.ACCESS_TOKEN_COOKIE_NAME, tokens.access_token, settings.access_token_ttl_seconds
    )
    _set_token_cookie(
        response, settings.REFRESH_TOKEN_COOKIE_NAME, tokens.refresh_token, settings.refresh_token_ttl_seconds
    )
    return APIResponse(message="user logged in successfully", data=tokens.model_dump(by_alias=True))


@router.put("/refresh", response_model=APIResponse)
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[TokenRefresh] = Body(default=None),
    trace_id: Optional[str] = Depends(get_trace_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Refresh endpoint - mint a new access token from a refresh token
    """
    token = _resolve_refresh_token(body, request, AuthenticationError("no JWT found"))
    tokens = await auth_service.refresh(token, trace_id=trace_id)

    _set_token_cookie(
        response, settings.ACCESS_TOKEN_COOKIE_NAME, tokens.access_token, settings.access_token_ttl_seconds
    )
    return APIResponse(message="refresh token successfully", data=tokens.model_dump(by_alias=True))


@router.delete("/logout", response_model=APIResponse, status_code=status.HTTP_200_OK)
async def logout(
    request: Request,
    response: Response,
    body: Optional[TokenRefresh] = Body(default=None),
    trace_id: Optional[str] = Depends(get_trace_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Logout endpoint - revoke the refresh token and clear the token cookies

    A request carrying no refresh token at all is rejected as invalid input.
    """
    token = _resolve_refresh_token(body, request, ValidationError("refreshToken cannot be blank"))
    await auth_service.logout(token, trace_id=trace_id)

    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE_NAME, path="/")
    response.delete_cookie(settings.REFRESH_TOKEN_COOKIE_NAME, path="/")
    return APIResponse(message="user logged out successfully", data="user logged out successfully")


@router.get("/me", response_model=APIResponse)
async def get_current_user_info(current_user: UserIdentity = Depends(get_current_user)):
    """
    Get current user information
    """
    profile = UserResponse.model_validate(current_user, from_attributes=True)
    return APIResponse(message="current user", data=profile.model_dump(by_alias=True, mode="json"))
