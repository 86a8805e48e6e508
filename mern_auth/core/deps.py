"""
FastAPI Dependencies
Authentication, authorization guards and service wiring
"""

from typing import Iterable, Union

from fastapi import Depends, Request
import structlog

from mern_auth.core.authenticator import Authenticator
from mern_auth.core.errors import Forbidden
from mern_auth.core.identity import Identity
from mern_auth.core.permission_resolver import permission_resolver
from mern_auth.core.security import extract_bearer_token
from mern_auth.services.credential_store import CredentialStore
from mern_auth.services.user import UserManagementService

logger = structlog.get_logger()


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_user_service(request: Request) -> UserManagementService:
    return request.app.state.user_service


async def get_current_identity(
    request: Request,
    authenticator: Authenticator = Depends(get_authenticator),
) -> Identity:
    """
    Verify the request's bearer token and resolve the caller

    Args:
        request: Incoming request carrying the Authorization header
        authenticator: Active authentication scheme

    Returns:
        Identity of the caller

    Raises:
        Unauthenticated: No usable bearer token
        InvalidCredential: Token rejected
        VerificationUnavailable: Verifier backend unreachable
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    identity = await authenticator.authenticate(token)
    request.state.identity = identity
    return identity


def require_role(roles: Union[str, Iterable[str]]):
    """
    Dependency factory allowing callers holding any of ``roles``

    Args:
        roles: A role name or collection of role names

    Returns:
        Dependency function
    """
    required = [roles] if isinstance(roles, str) else list(roles)

    async def role_checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not identity.has_any_role(required):
            logger.warning(
                "User lacks required role",
                user_id=identity.id,
                required_roles=required,
                user_roles=sorted(identity.roles),
            )
            raise Forbidden(
                f"Access denied. Required roles: {', '.join(required)}. "
                f"Your roles: {', '.join(sorted(identity.roles))}"
            )

        logger.debug("Role check passed", user_id=identity.id, roles=required)
        return identity

    return role_checker


def require_permission(permission: str):
    """
    Dependency factory for checking a derived permission

    Args:
        permission: Permission token the caller must hold

    Returns:
        Dependency function
    """
    async def permission_checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        permissions = permission_resolver.resolve_permissions(identity)
        if permission not in permissions:
            logger.warning(
                "User lacks required permission",
                user_id=identity.id,
                required=permission,
                user_roles=sorted(identity.roles),
            )
            raise Forbidden(f"Access denied. Required permission: {permission}")

        logger.debug("Permission check passed", user_id=identity.id, permission=permission)
        return identity

    return permission_checker
