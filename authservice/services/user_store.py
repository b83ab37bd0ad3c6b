"""User store - identity persistence on SQLAlchemy"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authservice.core.exceptions import InternalError
from authservice.models.user import User
from authservice.schemas.user import UserIdentity

logger = logging.getLogger(__name__)


class UserStore:
    """
    Identity lookups and inserts.

    Each call opens its own session and runs in a worker thread, so the
    store is safe to share between concurrent requests.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def find_by_username(self, username: str) -> Optional[UserIdentity]:
        return await asyncio.to_thread(self._find_one, User.username == username)

    async def find_by_email(self, email: str) -> Optional[UserIdentity]:
        return await asyncio.to_thread(self._find_one, User.email == email)

    async def find_by_id(self, user_id: int) -> Optional[UserIdentity]:
        return await asyncio.to_thread(self._find_one, User.id == user_id)

    async def is_username_exists(self, username: str) -> bool:
        return await asyncio.to_thread(self._exists, User.username == username)

    async def is_email_exists(self, email: str) -> bool:
        return await asyncio.to_thread(self._exists, User.email == email)

    async def insert(self, identity: UserIdentity) -> Optional[UserIdentity]:
        """
        Persist a new identity in a single transaction.

        Returns:
            The stored identity with its assigned id

        Raises:
            InternalError: If the write fails
        """
        return await asyncio.to_thread(self._insert, identity)

    async def update(self, identity: UserIdentity) -> Optional[UserIdentity]:
        """Persist mutable fields (phone, password hash) of an existing identity"""
        return await asyncio.to_thread(self._update, identity)

    def _find_one(self, criterion) -> Optional[UserIdentity]:
        with self._session_factory() as db:
            user = db.query(User).filter(criterion).first()
            return UserIdentity.model_validate(user) if user else None

    def _exists(self, criterion) -> bool:
        with self._session_factory() as db:
            return db.query(User.id).filter(criterion).first() is not None

    def _insert(self, identity: UserIdentity) -> Optional[UserIdentity]:
        with self._session_factory() as db:
            user = User(
                username=identity.username,
                email=identity.email,
                phone=identity.phone,
                password_hash=identity.password_hash,
            )
            try:
                db.add(user)
                db.commit()
                db.refresh(user)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error(f"Failed to insert user {identity.username}: {exc}")
                raise InternalError("failed to create user") from exc

            logger.info(f"Created user: {user.username} (id: {user.id})")
            return UserIdentity.model_validate(user)

    def _update(self, identity: UserIdentity) -> Optional[UserIdentity]:
        with self._session_factory() as db:
            user = db.query(User).filter(User.id == identity.id).first()
            if not user:
                return None
            user.phone = identity.phone
            user.password_hash = identity.password_hash
            try:
                db.commit()
                db.refresh(user)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error(f"Failed to update user {identity.username}: {exc}")
                raise InternalError("failed to update user") from exc
            return UserIdentity.model_validate(user)
