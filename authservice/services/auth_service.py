"""Authentication service - register, login, refresh and logout flows"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from authservice.config import Settings
from authservice.core.cache import CacheStore
from authservice.core.exceptions import (
    ConflictError,
    InternalError,
    InvalidCredentialsError,
    TokenError,
    TokenInvalidError,
)
from authservice.core.security import (
    TokenCodec,
    get_password_hash,
    new_token_id,
    token_prefix,
    verify_password,
)
from authservice.schemas.user import (
    AuthResponse,
    TokenResponse,
    UserIdentity,
    UserLogin,
    UserRegister,
)
from authservice.services.token_service import (
    CacheRefreshTokenStore,
    DatabaseRefreshTokenStore,
    RefreshTokenStore,
)
from authservice.services.user_service import UserService
from authservice.services.user_store import UserStore

logger = logging.getLogger(__name__)


class AuthService:
    """
    Stateless orchestration of the authentication flows.

    Every method takes an optional ``trace_id`` that is carried into its
    log lines.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        codec: TokenCodec,
        user_service: UserService,
        user_store: UserStore,
        refresh_tokens: RefreshTokenStore,
    ):
        self.settings = settings
        self.codec = codec
        self.user_service = user_service
        self.user_store = user_store
        self.refresh_tokens = refresh_tokens

    def _mint_access_token(self, user) -> str:
        return self.codec.generate(
            secret_key=self.settings.ACCESS_SECRET,
            user=user,
            expires_at=self.codec.now() + timedelta(seconds=self.settings.access_token_ttl_seconds),
            additional_claims={"typ": "access", "jti": new_token_id()},
        )

    def _mint_refresh_token(self, user) -> str:
        return self.codec.generate(
            secret_key=self.settings.REFRESH_SECRET,
            user=user,
            expires_at=self.codec.now() + timedelta(seconds=self.settings.refresh_token_ttl_seconds),
            additional_claims={"typ": "refresh", "jti": new_token_id()},
        )

    async def register(self, user: UserRegister, trace_id: Optional[str] = None) -> str:
        """
        Create a new identity

        Args:
            user: Registration data with plaintext password
            trace_id: Request correlation id

        Returns:
            Email of the created user

        Raises:
            ConflictError: Username or email already taken
            InternalError: Store returned no record
        """
        if not await self.user_service.is_username_available(user.username):
            logger.info(f"[{trace_id}] register rejected, username taken: {user.username}")
            raise ConflictError()

        if not await self.user_service.is_email_available(user.email):
            logger.info(f"[{trace_id}] register rejected, email taken: {user.username}")
            raise ConflictError()

        password_hash = await asyncio.to_thread(get_password_hash, user.password)
        created = await self.user_store.insert(
            UserIdentity(
                username=user.username,
                email=user.email,
                phone=user.phone,
                password_hash=password_hash,
            )
        )
        if created is None or not created.email:
            raise InternalError("failed to create user")

        logger.info(f"[{trace_id}] user registered: {created.username} (id: {created.id})")
        return created.email

    async def authenticate(self, credentials: UserLogin, trace_id: Optional[str] = None) -> AuthResponse:
        """
        Check credentials and issue an access/refresh token pair

        Raises:
            InvalidCredentialsError: Unknown user or wrong password
            InternalError: Refresh token state could not be stored
        """
        existing = await self.user_service.get_by_username(credentials.username)
        if existing is None:
            logger.info(f"[{trace_id}] login failed for username: {credentials.username}")
            raise InvalidCredentialsError()

        matches = await asyncio.to_thread(verify_password, credentials.password, existing.password_hash)
        if not matches:
            logger.info(f"[{trace_id}] login failed for username: {credentials.username}")
            raise InvalidCredentialsError()

        access_token = self._mint_access_token(existing)
        refresh_token = self._mint_refresh_token(existing)

        # State must exist before the token leaves the service.
        await self.refresh_tokens.issue(
            refresh_token,
            existing.id,
            self.settings.refresh_token_ttl_seconds,
        )

        logger.info(f"[{trace_id}] user authenticated: {existing.username}")
        return AuthResponse(access_token=access_token, refresh_token=refresh_token)

    async def refresh(self, refresh_token: str, trace_id: Optional[str] = None) -> TokenResponse:
        """
        Mint a new access token from a redeemable refresh token

        Every rejection is the same ``TokenInvalidError``.
        """
        if await self.refresh_tokens.is_revoked(refresh_token):
            logger.info(f"[{trace_id}] refresh rejected, token revoked: {token_prefix(refresh_token)}")
            raise TokenInvalidError()

        try:
            username = self.codec.extract_username(self.settings.REFRESH_SECRET, refresh_token)
            if username is None:
                raise TokenInvalidError()

            current_user = await self.user_service.get_by_username(username)
            if current_user is None:
                raise TokenInvalidError()

            redeemable = await self.refresh_tokens.is_redeemable(refresh_token)
            logger.debug(
                f"[{trace_id}] refresh token redeemable: {redeemable}, username: {username}"
            )

            if not (
                redeemable
                and self.codec.is_valid(self.settings.REFRESH_SECRET, refresh_token, current_user)
                and username == current_user.username
            ):
                raise TokenInvalidError()
        except TokenError as exc:
            logger.info(f"[{trace_id}] refresh rejected: {type(exc).__name__}")
            raise TokenInvalidError() from None

        logger.info(f"[{trace_id}] access token refreshed for: {current_user.username}")
        return TokenResponse(access_token=self._mint_access_token(current_user))

    async def logout(self, refresh_token: str, trace_id: Optional[str] = None) -> None:
        """
        Revoke and deactivate a refresh token

        Both steps run concurrently and are always attempted; failures are
        logged and never raised.
        """
        results = await asyncio.gather(
            self.refresh_tokens.revoke(refresh_token, self.settings.refresh_token_ttl_seconds),
            self.refresh_tokens.consume(refresh_token),
            return_exceptions=True,
        )
        for step, result in zip(("revoke", "consume"), results):
            if isinstance(result, BaseException):
                logger.error(
                    f"[{trace_id}] logout {step} failed for {token_prefix(refresh_token)}: {result!r}"
                )
        logger.info(f"[{trace_id}] user logged out: {token_prefix(refresh_token)}")

    async def get_current_user(self, access_token: str) -> UserIdentity:
        """
        Resolve a bearer access token to its identity

        Raises:
            TokenInvalidError: Token rejected or user unknown
        """
        try:
            username = self.codec.extract_username(self.settings.ACCESS_SECRET, access_token)
        except TokenError:
            raise TokenInvalidError() from None
        if username is None:
            raise TokenInvalidError()

        user = await self.user_service.get_by_username(username)
        if user is None:
            raise TokenInvalidError()
        return user


def build_auth_service(
    settings: Settings,
    session_factory: Callable[[], Session],
    cache: CacheStore,
) -> AuthService:
    """Wire the service graph; the refresh token store follows REFRESH_TOKEN_STORE"""
    codec = TokenCodec(issuer=settings.TOKEN_ISSUER, algorithm=settings.ALGORITHM)
    user_store = UserStore(session_factory)
    user_service = UserService(user_store, cache, cache_ttl_seconds=settings.user_cache_ttl_seconds)

    refresh_tokens: RefreshTokenStore
    if settings.REFRESH_TOKEN_STORE == "database":
        refresh_tokens = DatabaseRefreshTokenStore(session_factory)
    else:
        refresh_tokens = CacheRefreshTokenStore(cache)

    logger.info(f"Refresh token store: {type(refresh_tokens).__name__}")
    return AuthService(
        settings=settings,
        codec=codec,
        user_service=user_service,
        user_store=user_store,
        refresh_tokens=refresh_tokens,
    )
