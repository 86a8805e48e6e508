"""
User Repository
Database operations for local credential records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from mern_auth.models.user import User
from mern_auth.repositories.base import CRUDBase

logger = structlog.get_logger()


class UserRepository(CRUDBase[User]):
    async def get_by_username_or_email(
        self,
        db: AsyncSession,
        *,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        conditions = []
        if username:
            conditions.append(User.username == username.strip())
        if email:
            conditions.append(User.email == email.lower().strip())
        if not conditions:
            return None

        result = await db.execute(select(User).where(or_(*conditions)).limit(1))
        return result.scalar_one_or_none()

    async def role_distribution(self, db: AsyncSession) -> dict[str, int]:
        result = await db.execute(
            select(User.role, func.count(User.id)).group_by(User.role).order_by(User.role)
        )
        return {role: count for role, count in result.all()}

    async def count_created_since(self, db: AsyncSession, since: datetime) -> int:
        result = await db.execute(select(func.count(User.id)).where(User.created_at >= since))
        return result.scalar() or 0


user_repository = UserRepository(User)
