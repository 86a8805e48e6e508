"""
Permission resolver seam.

Permissions are never stored per identity; they are derived from the
recognized role on every check.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from mern_auth.core.identity import Identity
from mern_auth.core.rbac import derive_permissions


class PermissionResolver(ABC):
    @abstractmethod
    def resolve_permissions(self, identity: Identity) -> frozenset[str]:
        raise NotImplementedError


class RolePermissionResolver(PermissionResolver):
    def resolve_permissions(self, identity: Identity) -> frozenset[str]:
        return derive_permissions(identity.roles)


permission_resolver = RolePermissionResolver()
