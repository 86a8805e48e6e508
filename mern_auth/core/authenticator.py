"""
Authenticators: bearer token in, Identity out.

Exactly one authenticator is built at startup from ``AUTH_SCHEME``; both
schemes are never active at the same time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import structlog

from mern_auth.core.config import Settings
from mern_auth.core.errors import InvalidCredential, VerificationUnavailable
from mern_auth.core.identity import Identity, identity_from_claims, identity_from_record
from mern_auth.core.role_assignment import RoleAutoAssigner
from mern_auth.core.token_validator import (
    KeycloakIntrospectionStrategy,
    LocalJWTValidationStrategy,
    TokenValidationStrategy,
)
from mern_auth.services.credential_store import CredentialStore
from mern_auth.services.keycloak import KeycloakClient

logger = structlog.get_logger()


class Authenticator(ABC):
    scheme: str

    @abstractmethod
    async def authenticate(self, token: str) -> Identity:
        raise NotImplementedError


class LocalAuthenticator(Authenticator):
    """Local JWT plus a lookup of the backing credential record."""

    scheme = "local"

    def __init__(self, strategy: TokenValidationStrategy, store: CredentialStore) -> None:
        self._strategy = strategy
        self._store = store

    async def authenticate(self, token: str) -> Identity:
        result = await self._strategy.validate(token)

        try:
            record = await self._store.find_by_id(result.subject)
        except Exception as e:
            logger.error("Credential store error during authentication", error=str(e), user_id=result.subject)
            raise VerificationUnavailable()

        # A deleted account and one that never existed look the same to the caller.
        if record is None:
            logger.warning("User not found for token", user_id=result.subject)
            raise InvalidCredential()

        identity = identity_from_record(record)
        logger.debug("User authenticated successfully", user_id=identity.id, roles=sorted(identity.roles))
        return identity


class KeycloakAuthenticator(Authenticator):
    """Introspection, claim-based identity, then best-effort role auto-assignment."""

    scheme = "keycloak"

    def __init__(self, strategy: TokenValidationStrategy, assigner: RoleAutoAssigner) -> None:
        self._strategy = strategy
        self._assigner = assigner

    async def authenticate(self, token: str) -> Identity:
        result = await self._strategy.validate(token)
        identity = identity_from_claims(result.claims)

        assignment = await self._assigner.ensure_role(identity)
        if not assignment.ok:
            logger.warning("Continuing without auto-assigned role", user_id=identity.id)

        logger.debug(
            "User authenticated successfully",
            user_id=assignment.identity.id,
            roles=sorted(assignment.identity.roles),
        )
        return assignment.identity


def build_authenticator(
    settings: Settings,
    *,
    credential_store: Optional[CredentialStore] = None,
    keycloak_client: Optional[KeycloakClient] = None,
) -> Authenticator:
    if settings.AUTH_SCHEME == "keycloak":
        if keycloak_client is None:
            raise ValueError("Keycloak scheme requires a Keycloak client")
        return KeycloakAuthenticator(
            KeycloakIntrospectionStrategy(keycloak_client),
            RoleAutoAssigner(keycloak_client),
        )

    if credential_store is None:
        raise ValueError("Local scheme requires a credential store")
    return LocalAuthenticator(
        LocalJWTValidationStrategy(
            secret_key=settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            issuer=settings.JWT_ISSUER,
        ),
        credential_store,
    )
