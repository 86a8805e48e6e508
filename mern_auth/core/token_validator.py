"""
Token validation strategies.

One strategy is active per deployment: local JWTs signed with the
server secret, or Keycloak tokens checked through introspection.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from joserfc import jwt as jose_jwt
from joserfc import jws
from joserfc.errors import JoseError
from joserfc.jwk import OctKey

from mern_auth.core.errors import InvalidCredential, VerificationUnavailable
from mern_auth.services.keycloak import KeycloakClient, KeycloakError

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenValidationResult:
    subject: str
    claims: dict
    issuer: Optional[str]


class TokenValidationStrategy(ABC):
    @abstractmethod
    async def validate(self, token: str) -> TokenValidationResult:
        raise NotImplementedError


class LocalJWTValidationStrategy(TokenValidationStrategy):
    """Signature and expiry check against the server-held secret."""

    def __init__(self, secret_key: str, algorithm: str, issuer: Optional[str] = None) -> None:
        self._jwt_key = OctKey.import_key(secret_key)
        self._algorithm = algorithm
        self._issuer = issuer
        claims_options = {"exp": {"essential": True}, "sub": {"essential": True}}
        if issuer:
            claims_options["iss"] = {"essential": True, "value": issuer}
        self._claims_registry = jose_jwt.JWTClaimsRegistry(**claims_options)

    async def validate(self, token: str) -> TokenValidationResult:
        try:
            token_obj = jose_jwt.decode(token, self._jwt_key, algorithms=[self._algorithm])
            self._claims_registry.validate(token_obj.claims)
        except (JoseError, ValueError) as exc:
            logger.warning("JWT verification failed", error=str(exc))
            raise InvalidCredential()

        payload = token_obj.claims
        if payload.get("type") != "access":
            logger.warning("Invalid token type", actual=payload.get("type"))
            raise InvalidCredential()

        subject = str(payload["sub"])
        logger.debug("Token verified successfully", subject=subject)
        return TokenValidationResult(subject=subject, claims=dict(payload), issuer=payload.get("iss"))


class KeycloakIntrospectionStrategy(TokenValidationStrategy):
    """
    Delegates the validity decision to Keycloak's introspection endpoint.

    A token Keycloak calls inactive (or an introspection call rejected
    with 401) is a bad credential. Anything else that goes wrong on the
    way is reported as the provider being unavailable, so an outage is
    never mistaken for an unauthorized user.
    """

    def __init__(self, client: KeycloakClient) -> None:
        self._client = client

    async def validate(self, token: str) -> TokenValidationResult:
        try:
            introspection = await self._client.introspect(token)
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code == 401:
                logger.warning("Keycloak rejected introspection", status=status_code)
                raise InvalidCredential()
            logger.error("Keycloak introspection failed", status=status_code)
            raise VerificationUnavailable()
        except httpx.TimeoutException:
            logger.error("Keycloak introspection timed out")
            raise VerificationUnavailable()
        except (httpx.HTTPError, KeycloakError, ValueError) as exc:
            logger.error("Keycloak introspection unavailable", error=str(exc))
            raise VerificationUnavailable()

        if not introspection.get("active"):
            logger.warning("Token is not active")
            raise InvalidCredential()

        claims = decode_unverified_claims(token)
        subject = claims.get("sub") or introspection.get("sub")
        if not subject:
            logger.warning("Token missing subject")
            raise InvalidCredential()

        claims["sub"] = str(subject)
        return TokenValidationResult(subject=str(subject), claims=claims, issuer=claims.get("iss"))


def decode_unverified_claims(token: str) -> dict:
    """
    Read the payload of a compact JWS without checking its signature.

    Only used after Keycloak has vouched for the token, to avoid a second
    round trip for the claims it already carries.
    """
    try:
        compact = jws.extract_compact(token.encode("utf-8"))
        claims = json.loads(compact.payload)
    except (JoseError, ValueError) as exc:
        logger.warning("Could not decode token payload", error=str(exc))
        raise InvalidCredential()

    if not isinstance(claims, dict):
        raise InvalidCredential()
    return claims
