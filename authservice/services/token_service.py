"""Refresh token lifecycle: issue, redeemability, revocation, consumption."""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authservice.core.cache import CacheKeys, CacheStore
from authservice.core.exceptions import InternalError
from authservice.core.security import token_prefix
from authservice.models.security import Authentication

logger = logging.getLogger(__name__)

BLACKLISTED_MARKER = "blacklisted"


class RefreshTokenStore(abc.ABC):
    """
    Server-side state of refresh tokens.

    A token is ACTIVE after ``issue`` and stops being redeemable for good
    once ``revoke`` or ``consume`` has completed for that exact string.
    Expiry is passive.
    """

    @abc.abstractmethod
    async def issue(self, token: str, user_id: int, ttl_seconds: int) -> None:
        """Mark ``token`` active. Raises ``InternalError`` if the state cannot be written."""

    @abc.abstractmethod
    async def is_redeemable(self, token: str) -> bool:
        """True only while the token is active and not revoked."""

    @abc.abstractmethod
    async def revoke(self, token: str, ttl_seconds: int) -> None:
        """Mark ``token`` revoked regardless of its current state."""

    @abc.abstractmethod
    async def consume(self, token: str) -> None:
        """Remove the active state of ``token``."""

    async def is_revoked(self, token: str) -> bool:
        """Cheap revocation lookup usable before any decoding; stores without one say False."""
        return False


class DatabaseRefreshTokenStore(RefreshTokenStore):
    """Store-and-check design: redeemable iff an ``authentications`` row exists."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def issue(self, token: str, user_id: int, ttl_seconds: int) -> None:
        record = await asyncio.to_thread(self._insert, token, user_id)
        if record is None:
            raise InternalError("failed to create authentication token")

    async def is_redeemable(self, token: str) -> bool:
        return await asyncio.to_thread(self._exists, token)

    async def revoke(self, token: str, ttl_seconds: int) -> None:
        # No separate deny list in this design; revocation removes the row.
        await asyncio.to_thread(self._delete, token)

    async def consume(self, token: str) -> None:
        await asyncio.to_thread(self._delete, token)

    async def find(self, token: str) -> Optional[Authentication]:
        return await asyncio.to_thread(self._find, token)

    def _insert(self, token: str, user_id: int) -> Optional[Authentication]:
        with self._session_factory() as db:
            record = Authentication(token=token, user_id=user_id)
            try:
                db.add(record)
                db.commit()
                db.refresh(record)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error(f"Failed to store refresh token for user {user_id}: {exc}")
                return None
            logger.info(f"Refresh token stored successfully for user: {user_id}")
            return record

    def _exists(self, token: str) -> bool:
        with self._session_factory() as db:
            return db.query(Authentication.token).filter(Authentication.token == token).first() is not None

    def _find(self, token: str) -> Optional[Authentication]:
        with self._session_factory() as db:
            return db.query(Authentication).filter(Authentication.token == token).first()

    def _delete(self, token: str) -> int:
        with self._session_factory() as db:
            try:
                count = db.query(Authentication).filter(Authentication.token == token).delete()
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error(f"Failed to delete refresh token {token_prefix(token)}: {exc}")
                raise InternalError() from exc
            logger.info(f"Refresh token removal for {token_prefix(token)}: {count}")
            return count


class CacheRefreshTokenStore(RefreshTokenStore):
    """
    Allow/deny design on the cache.

    ``refresh_token:<token>`` marks the token active with a TTL matching its
    lifetime; ``blacklisted:<token>`` marks it revoked with its own TTL.
    Both keys are checked independently.
    """

    def __init__(self, cache: CacheStore):
        self.cache = cache

    async def issue(self, token: str, user_id: int, ttl_seconds: int) -> None:
        token_data = {
            "user_id": user_id,
            "created_at": int(time.time() * 1000),
            "token": token,
        }
        await self.cache.set(CacheKeys.refresh_token(token), token_data, ttl_seconds)
        logger.info(f"Refresh token stored successfully for user: {user_id}")

    async def is_redeemable(self, token: str) -> bool:
        token_exists = await self.cache.exists(CacheKeys.refresh_token(token))
        blacklisted = await self.is_revoked(token)
        is_valid = token_exists and not blacklisted
        logger.debug(
            f"Refresh token validation for {token_prefix(token)}: "
            f"exists={token_exists}, blacklisted={blacklisted}, valid={is_valid}"
        )
        return is_valid

    async def is_revoked(self, token: str) -> bool:
        blacklisted = await self.cache.exists(CacheKeys.blacklisted_token(token))
        logger.debug(f"Token blacklist check for {token_prefix(token)}: {blacklisted}")
        return blacklisted

    async def revoke(self, token: str, ttl_seconds: int) -> None:
        await self.cache.set(CacheKeys.blacklisted_token(token), BLACKLISTED_MARKER, ttl_seconds)
        logger.info(f"Token blacklisted successfully: {token_prefix(token)}")

    async def consume(self, token: str) -> None:
        deleted = await self.cache.delete(CacheKeys.refresh_token(token))
        logger.info(f"Refresh token removal for {token_prefix(token)}: {deleted}")
