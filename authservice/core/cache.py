"""Redis-backed key-value cache with per-key TTL"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Type, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel

from authservice.core.exceptions import InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _safe_key(key: str) -> str:
    """Cache key with any token part shortened for logs"""
    namespace, _, rest = key.partition(":")
    if namespace == "user" or not rest:
        return key
    return f"{namespace}:{rest[:10]}..."


class CacheKeys:
    """Key namespaces shared by every cache consumer."""

    @staticmethod
    def user(username: str) -> str:
        return f"user:{username}"

    @staticmethod
    def refresh_token(token: str) -> str:
        return f"refresh_token:{token}"

    @staticmethod
    def blacklisted_token(token: str) -> str:
        return f"blacklisted:{token}"


class CacheStore:
    """
    Thin async wrapper over a Redis client.

    ``get``/``set`` surface store failures as ``InternalError``;
    ``delete``/``exists`` log and degrade to ``False``.
    """

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout: float = 5.0) -> "CacheStore":
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, BaseModel):
            return value.model_dump_json()
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: str, value_type: Type[T]) -> T:
        if isinstance(value_type, type) and issubclass(value_type, BaseModel):
            return value_type.model_validate_json(raw)
        return json.loads(raw)

    async def get(self, key: str, value_type: Type[T]) -> Optional[T]:
        try:
            raw = await self.client.get(key)
            if raw is None:
                return None
            return self._decode(raw, value_type)
        except Exception as exc:
            logger.error(f"Error getting cache key: {_safe_key(key)}: {exc}")
            raise InternalError() from exc

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            # Redis rejects non-positive expirations
            await self.client.set(key, self._encode(value), ex=max(1, int(ttl_seconds)))
        except Exception as exc:
            logger.error(f"Error setting cache key: {_safe_key(key)}: {exc}")
            raise InternalError() from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(key))
        except Exception as exc:
            logger.error(f"Error deleting cache key: {_safe_key(key)}: {exc}")
            return False

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(key))
        except Exception as exc:
            logger.error(f"Error checking cache key existence: {_safe_key(key)}: {exc}")
            return False

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
