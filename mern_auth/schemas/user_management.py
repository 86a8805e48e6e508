"""
User schemas for profile, permissions and admin management.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from mern_auth.core.rbac import Role
from mern_auth.schemas.base import BaseSchema


class ProfileDetail(BaseSchema):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    roles: list[str] = Field(default_factory=list)


class ProfileResponse(BaseSchema):
    message: str
    user: ProfileDetail


class PermissionsResponse(BaseSchema):
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)


class RoleAssignmentResponse(BaseSchema):
    message: str
    roles: list[str] = Field(default_factory=list)


class UserSummary(BaseSchema):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None


class UserListResponse(BaseSchema):
    users: list[UserSummary]
    total: int


class RoleCount(BaseSchema):
    role: str
    count: int


class UserStats(BaseSchema):
    total_users: int
    recent_users: int
    role_distribution: list[RoleCount] = Field(default_factory=list)


class StatsResponse(BaseSchema):
    stats: UserStats


class RoleUpdateRequest(BaseSchema):
    role: Role


class UserResponse(BaseSchema):
    message: str
    user: UserSummary
