"""
Identity resolution.

An Identity is the per-request view of the caller. It is built from a
credential record (local scheme) or from verified token claims (Keycloak
scheme) and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

from mern_auth.core.rbac import Role, is_recognized_role, normalize_roles, primary_role


@dataclass(frozen=True)
class Identity:
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: frozenset[str] = field(default_factory=frozenset)
    selected_role: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def primary_role(self) -> Optional[Role]:
        return primary_role(self.roles)

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return not self.roles.isdisjoint(roles)

    def with_role(self, role: str) -> "Identity":
        """Copy of this identity with ``role`` granted and the registration hint consumed."""
        return replace(self, roles=normalize_roles({*self.roles, role}, subject=self.id), selected_role=None)


def identity_from_record(record: Any) -> Identity:
    """Build an Identity from a local credential record (single ``role`` field)."""
    role = getattr(record, "role", None)
    roles = frozenset({role}) if is_recognized_role(role) else frozenset()
    return Identity(
        id=str(record.id),
        username=record.username,
        email=record.email,
        roles=roles,
    )


def _text_claim(claims: Mapping[str, Any], name: str) -> Optional[str]:
    value = claims.get(name)
    return value if isinstance(value, str) else None


def identity_from_claims(claims: Mapping[str, Any]) -> Identity:
    """
    Build an Identity from verified Keycloak token claims.

    Realm-level grants are filtered to the recognized roles, so provider
    defaults such as ``offline_access`` never reach the gate. The
    registration-time role hint is only kept while no role is granted.
    """
    subject = str(claims["sub"])
    realm_access = claims.get("realm_access")
    raw_roles = realm_access.get("roles") if isinstance(realm_access, dict) else None
    roles = normalize_roles(raw_roles if isinstance(raw_roles, list) else [], subject=subject)

    selected_role = None
    if not roles:
        hint = claims.get("role") or claims.get("selected_role")
        if isinstance(hint, list):
            hint = hint[0] if hint else None
        selected_role = hint if isinstance(hint, str) and hint else None

    return Identity(
        id=subject,
        username=_text_claim(claims, "preferred_username"),
        email=_text_claim(claims, "email"),
        first_name=_text_claim(claims, "given_name"),
        last_name=_text_claim(claims, "family_name"),
        roles=roles,
        selected_role=selected_role,
    )
