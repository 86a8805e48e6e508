"""
Role auto-assignment for identities authenticated through Keycloak.

A user can log in through the identity provider before any realm role
was granted to them. The first verified request heals that by granting
one role. This step is best effort: its outcome is reported as a value,
never raised, so a provider hiccup cannot turn a valid login into a
rejected request. An identity left without a role simply fails every
role-gated check.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
import structlog

from mern_auth.core.identity import Identity
from mern_auth.core.rbac import Role, is_recognized_role
from mern_auth.services.keycloak import KeycloakClient, KeycloakError

logger = structlog.get_logger()

ROLE_ATTRIBUTE = "role"


class AssignmentOutcome(str, Enum):
    ALREADY_ASSIGNED = "already_assigned"
    ASSIGNED = "assigned"
    FAILED = "failed"


@dataclass(frozen=True)
class RoleAssignmentResult:
    identity: Identity
    outcome: AssignmentOutcome
    role: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not AssignmentOutcome.FAILED


class RoleAutoAssigner:
    def __init__(self, client: KeycloakClient, default_role: Role = Role.USER) -> None:
        self._client = client
        self._default_role = default_role

    async def ensure_role(self, identity: Identity) -> RoleAssignmentResult:
        if identity.primary_role is not None:
            return RoleAssignmentResult(
                identity=identity,
                outcome=AssignmentOutcome.ALREADY_ASSIGNED,
                role=identity.primary_role.value,
            )

        role = await self._choose_role(identity)
        try:
            await self._client.assign_realm_role(identity.id, role)
        except (httpx.HTTPError, KeycloakError, ValueError) as exc:
            logger.warning(
                "Role auto-assignment failed",
                user_id=identity.id,
                role=role,
                error=str(exc),
            )
            return RoleAssignmentResult(
                identity=identity,
                outcome=AssignmentOutcome.FAILED,
                role=role,
                error=str(exc),
            )

        logger.info("Role auto-assigned", user_id=identity.id, role=role)
        return RoleAssignmentResult(
            identity=identity.with_role(role),
            outcome=AssignmentOutcome.ASSIGNED,
            role=role,
        )

    async def _choose_role(self, identity: Identity) -> str:
        """Registration hint, then the stored ``role`` attribute, then the default."""
        if is_recognized_role(identity.selected_role):
            return identity.selected_role
        if identity.selected_role:
            logger.warning("Ignoring unrecognized selected role", user_id=identity.id, role=identity.selected_role)

        try:
            stored = await self._client.get_user_attribute(identity.id, ROLE_ATTRIBUTE)
        except (httpx.HTTPError, KeycloakError, ValueError) as exc:
            logger.debug("Could not read stored role attribute", user_id=identity.id, error=str(exc))
            stored = None

        if is_recognized_role(stored):
            return stored
        return self._default_role.value
