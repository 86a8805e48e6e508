"""
User Directories
Admin-facing view of user accounts for each authentication scheme.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog

from mern_auth.core.rbac import ROLE_PRIORITY, is_recognized_role, primary_role
from mern_auth.core.role_assignment import ROLE_ATTRIBUTE
from mern_auth.schemas.user_management import RoleCount, UserStats, UserSummary
from mern_auth.services.credential_store import CredentialStore
from mern_auth.services.keycloak import KeycloakClient

logger = structlog.get_logger()

RECENT_WINDOW = timedelta(days=7)


def _distribution(counts: dict[str, int]) -> list[RoleCount]:
    return [RoleCount(role=role.value, count=counts[role.value]) for role in ROLE_PRIORITY if counts.get(role.value)]


class UserDirectory(ABC):
    @abstractmethod
    async def list_users(self) -> list[UserSummary]:
        raise NotImplementedError

    @abstractmethod
    async def get_stats(self) -> UserStats:
        raise NotImplementedError

    @abstractmethod
    async def update_role(self, user_id: str, role: str) -> Optional[UserSummary]:
        raise NotImplementedError

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        raise NotImplementedError


class LocalUserDirectory(UserDirectory):
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    @staticmethod
    def _to_summary(record: Any) -> UserSummary:
        return UserSummary(
            id=str(record.id),
            username=record.username,
            email=record.email,
            role=record.role,
            created_at=getattr(record, "created_at", None),
        )

    async def list_users(self) -> list[UserSummary]:
        return [self._to_summary(record) for record in await self._store.list_users()]

    async def get_stats(self) -> UserStats:
        counts = await self._store.role_distribution()
        recent = await self._store.count_created_since(datetime.now(timezone.utc) - RECENT_WINDOW)
        return UserStats(
            total_users=sum(counts.values()),
            recent_users=recent,
            role_distribution=_distribution(counts),
        )

    async def update_role(self, user_id: str, role: str) -> Optional[UserSummary]:
        record = await self._store.update_role(user_id, role)
        return self._to_summary(record) if record else None

    async def delete_user(self, user_id: str) -> bool:
        return await self._store.delete(user_id)


class KeycloakUserDirectory(UserDirectory):
    """
    Users and realm role grants held by Keycloak.

    A user's role is read from realm role membership; a user may hold
    several recognized roles only as a data anomaly, in which case the
    highest one is reported.
    """

    def __init__(self, client: KeycloakClient) -> None:
        self._client = client

    async def _role_members(self) -> dict[str, str]:
        """Map user id to its highest recognized realm role."""
        roles_by_user: dict[str, str] = {}
        for role in reversed(ROLE_PRIORITY):
            for member in await self._client.list_role_members(role.value):
                roles_by_user[member["id"]] = role.value
        return roles_by_user

    @staticmethod
    def _to_summary(user: dict[str, Any], role: Optional[str]) -> UserSummary:
        created_ms = user.get("createdTimestamp")
        return UserSummary(
            id=user["id"],
            username=user.get("username"),
            email=user.get("email"),
            role=role,
            created_at=datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc) if created_ms else None,
        )

    async def list_users(self) -> list[UserSummary]:
        users = await self._client.list_users()
        roles_by_user = await self._role_members()
        return [self._to_summary(user, roles_by_user.get(user["id"])) for user in users]

    async def _get_user(self, user_id: str) -> UserSummary:
        user = await self._client.get_user(user_id)
        granted = await self._client.get_user_realm_roles(user_id)
        role = primary_role(r.get("name") for r in granted)
        return self._to_summary(user, role.value if role else None)

    async def get_stats(self) -> UserStats:
        users = await self.list_users()
        counts: dict[str, int] = {}
        for user in users:
            if user.role:
                counts[user.role] = counts.get(user.role, 0) + 1

        since = datetime.now(timezone.utc) - RECENT_WINDOW
        recent = sum(1 for user in users if user.created_at and user.created_at >= since)
        return UserStats(
            total_users=len(users),
            recent_users=recent,
            role_distribution=_distribution(counts),
        )

    async def update_role(self, user_id: str, role: str) -> Optional[UserSummary]:
        current = await self._client.get_user_realm_roles(user_id)
        stale = [r for r in current if is_recognized_role(r.get("name")) and r.get("name") != role]
        await self._client.remove_realm_roles(user_id, stale)
        await self._client.assign_realm_role(user_id, role)
        # Keep the registration attribute in line so auto-assignment agrees.
        await self._client.set_user_attribute(user_id, ROLE_ATTRIBUTE, role)
        return await self._get_user(user_id)

    async def delete_user(self, user_id: str) -> bool:
        await self._client.delete_user(user_id)
        return True
