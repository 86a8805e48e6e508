"""
User Endpoints
Profile, permissions and role-gated administration
"""

from typing import Any

from fastapi import APIRouter, Depends
import structlog

from mern_auth.core.deps import get_current_identity, get_user_service, require_permission, require_role
from mern_auth.core.identity import Identity
from mern_auth.core.permission_resolver import permission_resolver
from mern_auth.core.rbac import Role
from mern_auth.schemas.base import MessageResponse
from mern_auth.schemas.user_management import (
    PermissionsResponse,
    ProfileDetail,
    ProfileResponse,
    RoleAssignmentResponse,
    RoleUpdateRequest,
    StatsResponse,
    UserListResponse,
    UserResponse,
)
from mern_auth.services.user import UserManagementService

logger = structlog.get_logger()
router = APIRouter()


def _roles(identity: Identity) -> list[str]:
    return sorted(identity.roles)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(identity: Identity = Depends(get_current_identity)) -> Any:
    """Current caller's profile"""
    return ProfileResponse(
        message="Profile data retrieved successfully",
        user=ProfileDetail(
            id=identity.id,
            username=identity.username,
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            full_name=identity.full_name or None,
            roles=_roles(identity),
        ),
    )


@router.get("/permissions", response_model=PermissionsResponse)
async def get_permissions(identity: Identity = Depends(get_current_identity)) -> Any:
    """Roles held by the caller and the permissions they imply"""
    permissions = permission_resolver.resolve_permissions(identity)
    return PermissionsResponse(roles=_roles(identity), permissions=sorted(permissions))


@router.get("/assign-role", response_model=RoleAssignmentResponse)
async def assign_role(identity: Identity = Depends(get_current_identity)) -> Any:
    """
    Report the caller's role after auto-assignment

    Authentication already ran auto-assignment; an identity still without a
    role here means the identity provider could not be updated.
    """
    if identity.primary_role is None:
        logger.warning("Caller still has no role after auto-assignment", user_id=identity.id)
        return RoleAssignmentResponse(message="Role could not be assigned, try again later", roles=[])
    return RoleAssignmentResponse(message="Role assigned", roles=_roles(identity))


@router.get("/mod/stats", response_model=StatsResponse)
async def get_stats(
    identity: Identity = Depends(require_role([Role.MODERATOR.value, Role.ADMIN.value])),
    service: UserManagementService = Depends(get_user_service),
) -> Any:
    """User statistics for moderators and admins"""
    stats = await service.get_stats()
    logger.info("User stats retrieved", user_id=identity.id, total_users=stats.total_users)
    return StatsResponse(stats=stats)


@router.get("/admin/users", response_model=UserListResponse)
async def list_users(
    identity: Identity = Depends(require_permission("manage_users")),
    service: UserManagementService = Depends(get_user_service),
) -> Any:
    users = await service.list_users()
    return UserListResponse(users=users, total=len(users))


@router.put("/admin/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: str,
    role_data: RoleUpdateRequest,
    identity: Identity = Depends(require_permission("manage_users")),
    service: UserManagementService = Depends(get_user_service),
) -> Any:
    """
    Change a user's role

    Raises:
        Forbidden: If an admin tries to demote themselves
        HTTPException: If the user does not exist
    """
    user = await service.update_role(acting=identity, user_id=user_id, role=role_data.role)
    return UserResponse(message="User role updated successfully", user=user)


@router.delete("/admin/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    identity: Identity = Depends(require_permission("delete_users")),
    service: UserManagementService = Depends(get_user_service),
) -> Any:
    await service.delete_user(acting=identity, user_id=user_id)
    return MessageResponse(message="User deleted successfully")
