"""
User Service
Business logic for administrative user management.
"""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

import httpx
import structlog
from fastapi import HTTPException, status

from mern_auth.core.errors import Forbidden
from mern_auth.core.identity import Identity
from mern_auth.core.rbac import Role, is_recognized_role
from mern_auth.schemas.user_management import UserStats, UserSummary
from mern_auth.services.keycloak import KeycloakError
from mern_auth.services.user_directory import UserDirectory

logger = structlog.get_logger()

T = TypeVar("T")


class UserManagementService:
    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    async def _call(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run a directory call, translating identity-provider failures into HTTP errors."""
        try:
            return await func()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
            logger.error("Identity provider rejected user operation", operation=operation, status=exc.response.status_code)
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Identity provider error")
        except (httpx.HTTPError, KeycloakError) as exc:
            logger.error("Identity provider unavailable", operation=operation, error=str(exc))
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Identity provider unavailable")

    async def list_users(self) -> list[UserSummary]:
        return await self._call("list_users", self.directory.list_users)

    async def get_stats(self) -> UserStats:
        return await self._call("get_stats", self.directory.get_stats)

    async def update_role(self, *, acting: Identity, user_id: str, role: str) -> UserSummary:
        if not is_recognized_role(role):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid role. Allowed roles are: user, moderator, admin",
            )

        # Admins cannot demote themselves.
        if user_id == acting.id and role != Role.ADMIN.value:
            logger.warning("Admin attempted to remove own admin role", user_id=acting.id, role=role)
            raise Forbidden("You cannot remove your own admin role")

        user = await self._call("update_role", lambda: self.directory.update_role(user_id, role))
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        logger.info("User role updated by admin", user_id=user_id, role=role, acting_user_id=acting.id)
        return user

    async def delete_user(self, *, acting: Identity, user_id: str) -> None:
        if user_id == acting.id:
            logger.warning("Admin attempted to delete own account", user_id=acting.id)
            raise Forbidden("You cannot delete your own account")

        deleted = await self._call("delete_user", lambda: self.directory.delete_user(user_id))
        if not deleted:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        logger.info("User deleted by admin", user_id=user_id, acting_user_id=acting.id)
