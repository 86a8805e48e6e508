"""
RBAC helpers and canonical role/permission definitions.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

import structlog

logger = structlog.get_logger()


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


# Highest privilege first. Used to pick one role when a store reports several.
ROLE_PRIORITY: tuple[Role, ...] = (Role.ADMIN, Role.MODERATOR, Role.USER)

RECOGNIZED_ROLES: frozenset[str] = frozenset(role.value for role in Role)

# Permissions each role adds on top of the roles below it.
ROLE_PERMISSIONS: dict[Role, tuple[str, ...]] = {
    Role.USER: (
        "read_profile",
        "update_own_profile",
    ),
    Role.MODERATOR: (
        "view_stats",
        "moderate_content",
        "view_user_list",
    ),
    Role.ADMIN: (
        "manage_users",
        "delete_users",
        "system_config",
        "view_admin_panel",
    ),
}

ALL_PERMISSIONS: tuple[str, ...] = tuple(
    permission for role in reversed(ROLE_PRIORITY) for permission in ROLE_PERMISSIONS[role]
)


def is_recognized_role(name: Optional[str]) -> bool:
    return isinstance(name, str) and name in RECOGNIZED_ROLES


def recognized_roles(roles: Iterable[str] | None) -> set[str]:
    """Drop role names outside the user/moderator/admin enumeration."""
    return {role for role in (roles or []) if is_recognized_role(role)}


def primary_role(roles: Iterable[str] | None) -> Optional[Role]:
    present = recognized_roles(roles)
    for role in ROLE_PRIORITY:
        if role.value in present:
            return role
    return None


def normalize_roles(roles: Iterable[str] | None, *, subject: Optional[str] = None) -> frozenset[str]:
    """
    Reduce a raw role list to at most one recognized role.

    Several recognized roles at once is a data anomaly; the highest
    privilege one wins (admin > moderator > user).
    """
    present = recognized_roles(roles)
    if len(present) > 1:
        logger.warning("Multiple recognized roles present", subject=subject, roles=sorted(present))

    role = primary_role(present)
    return frozenset({role.value}) if role else frozenset()


def roles_covered_by(role: Role) -> tuple[Role, ...]:
    """The role itself plus every role below it in the hierarchy."""
    index = ROLE_PRIORITY.index(role)
    return ROLE_PRIORITY[index:]


def derive_permissions(roles: Iterable[str] | None) -> frozenset[str]:
    """
    Expand roles into permissions.

    Coverage is cumulative: admin implies moderator implies user. No
    recognized role means no permissions.
    """
    permissions: set[str] = set()
    for name in recognized_roles(roles):
        for covered in roles_covered_by(Role(name)):
            permissions.update(ROLE_PERMISSIONS[covered])
    return frozenset(permissions)


def role_description(role: str) -> str:
    return f"{role[:1].upper()}{role[1:]} role"
