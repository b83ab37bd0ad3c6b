"""User service - cached identity lookups and availability checks"""

from typing import Optional
import logging

from authservice.core.cache import CacheKeys, CacheStore
from authservice.schemas.user import UserIdentity
from authservice.services.user_store import UserStore

logger = logging.getLogger(__name__)


class UserService:
    """Read-through identity cache in front of the user store"""

    DEFAULT_CACHE_TTL_SECONDS = 30 * 60

    def __init__(
        self,
        store: UserStore,
        cache: CacheStore,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ):
        self.store = store
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds

    async def get_by_username(self, username: str) -> Optional[UserIdentity]:
        """
        Get user by username, consulting the cache first

        Args:
            username: Username

        Returns:
            The identity, or None if no such user exists
        """
        cache_key = CacheKeys.user(username)
        user = await self.cache.get(cache_key, UserIdentity)
        if user is not None:
            logger.debug(f"User cache hit for username: {username}")
            return user

        logger.debug(f"User cache miss for username: {username}")
        user = await self.store.find_by_username(username)
        if user is not None:
            await self.cache.set(cache_key, user, self.cache_ttl_seconds)
            logger.debug(f"User cached for username: {username}")
        return user

    async def is_username_available(self, username: str) -> bool:
        return not await self.store.is_username_exists(username)

    async def is_email_available(self, email: str) -> bool:
        return not await self.store.is_email_exists(email)

    async def update_user(self, user: UserIdentity) -> Optional[UserIdentity]:
        """Persist an identity change and drop its cached snapshot"""
        updated = await self.store.update(user)
        await self.invalidate_user_cache(user.username)
        return updated

    async def invalidate_user_cache(self, username: str) -> None:
        """Drop the cached identity; failures are logged, never raised"""
        try:
            deleted = await self.cache.delete(CacheKeys.user(username))
            logger.info(f"User cache invalidation for username '{username}': {deleted}")
        except Exception as exc:
            logger.error(f"Failed to invalidate user cache for username: {username}: {exc}")
