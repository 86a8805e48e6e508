"""
Keycloak Client
Token introspection and Admin REST API access for the remote scheme.

Every call goes through one httpx.AsyncClient configured with an explicit
timeout. Callers decide how httpx errors map to the request outcome.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

from mern_auth.core.rbac import role_description

logger = structlog.get_logger()


class KeycloakError(Exception):
    """Keycloak answered, but not with something usable."""


@dataclass
class CachedToken:
    value: str
    expires_at: float

    def is_fresh(self, now: float, leeway: float) -> bool:
        return now < self.expires_at - leeway


class KeycloakClient:
    """Thin async client for the realm's OIDC and admin endpoints"""

    def __init__(
        self,
        *,
        base_url: str,
        realm: str,
        client_id: str,
        client_secret: str,
        timeout: float = 5.0,
        admin_token_leeway: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.realm = realm
        self.client_id = client_id
        self._client_secret = client_secret
        self._admin_token_leeway = admin_token_leeway
        self._admin_token: Optional[CachedToken] = None
        self._http = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    @property
    def _oidc_path(self) -> str:
        return f"/realms/{self.realm}/protocol/openid-connect"

    @property
    def _admin_path(self) -> str:
        return f"/admin/realms/{self.realm}"

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _json(response: httpx.Response, expected: type = dict) -> Any:
        """Decode a JSON reply, raising KeycloakError when it is not JSON of the expected shape."""
        try:
            body = response.json()
        except ValueError as exc:
            raise KeycloakError(f"Non-JSON reply from {response.request.url.path}") from exc
        if not isinstance(body, expected):
            raise KeycloakError(f"Unexpected {type(body).__name__} reply from {response.request.url.path}")
        return body

    # ==================== OIDC ====================

    async def introspect(self, token: str) -> dict[str, Any]:
        """Ask Keycloak whether ``token`` is active. Raises httpx errors as-is."""
        response = await self._http.post(
            f"{self._oidc_path}/token/introspect",
            data={
                "token": token,
                "client_id": self.client_id,
                "client_secret": self._client_secret,
            },
        )
        response.raise_for_status()
        return self._json(response)

    async def get_admin_token(self) -> str:
        """
        Service-account token for admin calls.

        Cached until shortly before it expires; a stale or missing token
        is replaced with a fresh client_credentials grant.
        """
        now = time.monotonic()
        if self._admin_token and self._admin_token.is_fresh(now, self._admin_token_leeway):
            return self._admin_token.value

        response = await self._http.post(
            f"{self._oidc_path}/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self._client_secret,
            },
        )
        response.raise_for_status()
        body = self._json(response)
        access_token = body.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise KeycloakError("Token endpoint returned no access_token")

        try:
            expires_in = float(body.get("expires_in") or 60)
        except (TypeError, ValueError) as exc:
            raise KeycloakError("Token endpoint returned an invalid expires_in") from exc
        self._admin_token = CachedToken(value=access_token, expires_at=now + expires_in)
        logger.debug("Keycloak admin token refreshed", expires_in=expires_in)
        return access_token

    def invalidate_admin_token(self) -> None:
        self._admin_token = None

    async def _admin_request(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = await self.get_admin_token()
        response = await self._http.request(
            method,
            f"{self._admin_path}{path}",
            headers={"Authorization": f"Bearer {token}"},
            **kwargs,
        )
        if response.status_code == 401:
            # Revoked or rotated server side; next call fetches a new one.
            self.invalidate_admin_token()
        return response

    # ==================== Users ====================

    async def get_user(self, user_id: str) -> dict[str, Any]:
        response = await self._admin_request("GET", f"/users/{user_id}")
        response.raise_for_status()
        return self._json(response)

    async def get_user_attribute(self, user_id: str, name: str) -> Optional[str]:
        user = await self.get_user(user_id)
        attributes = user.get("attributes")
        values = attributes.get(name) if isinstance(attributes, dict) else None
        if isinstance(values, list) and values and isinstance(values[0], str):
            return values[0]
        return None

    async def set_user_attribute(self, user_id: str, name: str, value: str) -> None:
        user = await self.get_user(user_id)
        current = user.get("attributes")
        attributes = dict(current) if isinstance(current, dict) else {}
        attributes[name] = [value]
        response = await self._admin_request("PUT", f"/users/{user_id}", json={"attributes": attributes})
        response.raise_for_status()
        logger.info("Keycloak user attribute set", user_id=user_id, attribute=name, value=value)

    async def list_users(self, max_results: int = 500) -> list[dict[str, Any]]:
        response = await self._admin_request("GET", "/users", params={"max": max_results})
        response.raise_for_status()
        return self._json(response, list)

    async def delete_user(self, user_id: str) -> None:
        response = await self._admin_request("DELETE", f"/users/{user_id}")
        response.raise_for_status()
        logger.info("Keycloak user deleted", user_id=user_id)

    # ==================== Realm roles ====================

    async def get_realm_role(self, name: str) -> Optional[dict[str, Any]]:
        response = await self._admin_request("GET", f"/roles/{name}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return self._json(response)

    async def create_realm_role(self, name: str, description: Optional[str] = None) -> None:
        """Create a realm role. A role that already exists counts as created."""
        response = await self._admin_request(
            "POST",
            "/roles",
            json={"name": name, "description": description or role_description(name)},
        )
        if response.status_code == 409:
            logger.debug("Realm role already exists", role=name)
            return
        response.raise_for_status()
        logger.info("Realm role created", role=name)

    async def ensure_realm_role(self, name: str) -> dict[str, Any]:
        role = await self.get_realm_role(name)
        if role is None:
            await self.create_realm_role(name)
            role = await self.get_realm_role(name)
        if not role or "id" not in role:
            raise KeycloakError(f"Realm role '{name}' could not be resolved")
        return role

    async def get_user_realm_roles(self, user_id: str) -> list[dict[str, Any]]:
        response = await self._admin_request("GET", f"/users/{user_id}/role-mappings/realm")
        response.raise_for_status()
        return self._json(response, list)

    async def assign_realm_role(self, user_id: str, role_name: str) -> None:
        """Grant a realm role. Granting an already granted role is a no-op on Keycloak's side."""
        role = await self.ensure_realm_role(role_name)
        response = await self._admin_request(
            "POST", f"/users/{user_id}/role-mappings/realm", json=[role]
        )
        response.raise_for_status()
        logger.info("Realm role assigned", user_id=user_id, role=role_name)

    async def remove_realm_roles(self, user_id: str, roles: list[dict[str, Any]]) -> None:
        if not roles:
            return
        response = await self._admin_request(
            "DELETE", f"/users/{user_id}/role-mappings/realm", json=roles
        )
        response.raise_for_status()
        logger.info("Realm roles removed", user_id=user_id, roles=[r.get("name") for r in roles])

    async def list_role_members(self, role_name: str, max_results: int = 500) -> list[dict[str, Any]]:
        response = await self._admin_request(
            "GET", f"/roles/{role_name}/users", params={"max": max_results}
        )
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return self._json(response, list)
