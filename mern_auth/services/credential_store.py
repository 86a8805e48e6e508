"""
Credential Store
Persistence seam for local user records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mern_auth.models.user import User
from mern_auth.repositories.user import user_repository

logger = structlog.get_logger()


class CredentialStore(ABC):
    """Operations the auth layer needs from wherever user records live."""

    @abstractmethod
    async def find_by_username_or_email(
        self, *, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def create(self, *, username: str, email: str, hashed_password: str, role: str) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def update_role(self, user_id: str, role: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def list_users(self) -> list[Any]:
        raise NotImplementedError

    @abstractmethod
    async def role_distribution(self) -> dict[str, int]:
        raise NotImplementedError

    @abstractmethod
    async def count_created_since(self, since: datetime) -> int:
        raise NotImplementedError


def _parse_id(user_id: str) -> Optional[UUID]:
    try:
        return UUID(str(user_id))
    except ValueError:
        return None


class DatabaseCredentialStore(CredentialStore):
    """SQLAlchemy-backed store; every operation runs in its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_username_or_email(
        self, *, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[User]:
        async with self._session_factory() as db:
            return await user_repository.get_by_username_or_email(db, username=username, email=email)

    async def find_by_id(self, user_id: str) -> Optional[User]:
        uid = _parse_id(user_id)
        if uid is None:
            return None
        async with self._session_factory() as db:
            return await user_repository.get(db, id=uid)

    async def create(self, *, username: str, email: str, hashed_password: str, role: str) -> User:
        async with self._session_factory() as db:
            return await user_repository.create(
                db,
                obj_in={
                    "username": username.strip(),
                    "email": email.lower().strip(),
                    "hashed_password": hashed_password,
                    "role": role,
                },
            )

    async def update_role(self, user_id: str, role: str) -> Optional[User]:
        uid = _parse_id(user_id)
        if uid is None:
            return None
        async with self._session_factory() as db:
            user = await user_repository.get(db, id=uid)
            if user is None:
                return None
            return await user_repository.update(db, db_obj=user, obj_in={"role": role})

    async def delete(self, user_id: str) -> bool:
        uid = _parse_id(user_id)
        if uid is None:
            return False
        async with self._session_factory() as db:
            return await user_repository.delete(db, id=uid) is not None

    async def list_users(self) -> list[User]:
        async with self._session_factory() as db:
            return await user_repository.get_multi(db, order_by="-created_at", limit=1000)

    async def role_distribution(self) -> dict[str, int]:
        async with self._session_factory() as db:
            return await user_repository.role_distribution(db)

    async def count_created_since(self, since: datetime) -> int:
        async with self._session_factory() as db:
            return await user_repository.count_created_since(db, since)
