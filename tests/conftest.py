"""
Shared fixtures: an in-memory credential store and a fake Keycloak realm
served through httpx.MockTransport.
"""

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Optional
from urllib.parse import parse_qs
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient
from joserfc import jwt
from joserfc.jwk import OctKey

from mern_auth.core.config import Settings
from mern_auth.core.security import create_access_token, get_password_hash
from mern_auth.main import create_app
from mern_auth.services.credential_store import CredentialStore
from mern_auth.services.keycloak import KeycloakClient

KEYCLOAK_URL = "http://keycloak.test"
REALM = "test-realm"


# ==================== Local credential store ====================

class InMemoryCredentialStore(CredentialStore):
    def __init__(self):
        self.records = {}

    async def find_by_username_or_email(self, *, username=None, email=None):
        for record in self.records.values():
            if (username and record.username == username) or (email and record.email == email):
                return record
        return None

    async def find_by_id(self, user_id):
        return self.records.get(str(user_id))

    def add(self, *, username, email, hashed_password, role, created_at=None):
        record = SimpleNamespace(
            id=str(uuid4()),
            username=username,
            email=email.lower(),
            hashed_password=hashed_password,
            role=role,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.records[record.id] = record
        return record

    async def create(self, *, username, email, hashed_password, role):
        return self.add(username=username, email=email, hashed_password=hashed_password, role=role)

    async def update_role(self, user_id, role):
        record = self.records.get(str(user_id))
        if record is None:
            return None
        record.role = role
        return record

    async def delete(self, user_id):
        return self.records.pop(str(user_id), None) is not None

    async def list_users(self):
        return list(self.records.values())

    async def role_distribution(self):
        counts = {}
        for record in self.records.values():
            counts[record.role] = counts.get(record.role, 0) + 1
        return counts

    async def count_created_since(self, since):
        return sum(1 for record in self.records.values() if record.created_at >= since)


@pytest.fixture
def credential_store():
    return InMemoryCredentialStore()


@pytest.fixture
def local_settings():
    return Settings(AUTH_SCHEME="local", ENVIRONMENT="testing", CORS_ORIGINS=["http://localhost:5173"])


@pytest.fixture
def local_app(local_settings, credential_store):
    return create_app(local_settings, credential_store=credential_store)


@pytest.fixture
def local_client(local_app):
    with TestClient(local_app) as client:
        yield client


@pytest.fixture
def make_local_user(credential_store):
    """Create a stored account and return it together with a bearer header"""
    def _make(username, role="user", password="secret123", created_at=None):
        record = credential_store.add(
            username=username,
            email=f"{username}@example.com",
            hashed_password=get_password_hash(password),
            role=role,
            created_at=created_at,
        )
        headers = {"Authorization": f"Bearer {create_access_token(subject=record.id)}"}
        return record, headers
    return _make


# ==================== Fake Keycloak realm ====================

class FakeKeycloak:
    """Just enough of Keycloak's OIDC and admin REST API for the client under test"""

    def __init__(self):
        self.users = {}
        self.roles = {}
        self.mappings = {}
        self.active_tokens = set()
        self.admin_token_requests = 0
        self.admin_expires_in = 300
        self.revoked_admin_tokens = set()
        self.introspect_error: Optional[Exception] = None
        self.introspect_status = 200
        self.fail_role_grants = False
        self.requests = []
        # (method, path) -> (status, httpx.Response kwargs) served instead of the normal reply
        self.overrides = {}

    # ---- seeding helpers ----

    def add_user(self, username, *, roles=(), attributes=None, created_at=None):
        user_id = str(uuid4())
        created = created_at or datetime.now(timezone.utc)
        self.users[user_id] = {
            "id": user_id,
            "username": username,
            "email": f"{username}@example.com",
            "createdTimestamp": int(created.timestamp() * 1000),
            "attributes": dict(attributes or {}),
        }
        self.mappings[user_id] = set()
        for role in roles:
            self.add_role(role)
            self.mappings[user_id].add(role)
        return user_id

    def add_role(self, name):
        self.roles.setdefault(name, {"id": f"role-{name}", "name": name, "description": f"{name} role"})

    def issue_token(self, user_id, *, realm_roles=None, **claims):
        user = self.users.get(user_id, {})
        payload = {
            "sub": user_id,
            "iss": f"{KEYCLOAK_URL}/realms/{REALM}",
            "preferred_username": user.get("username"),
            "email": user.get("email"),
            "given_name": "Test",
            "family_name": "User",
            "realm_access": {"roles": list(realm_roles if realm_roles is not None else self.mappings.get(user_id, ()))},
        }
        payload.update(claims)
        token = jwt.encode({"alg": "HS256"}, payload, OctKey.import_key("keycloak-signing-key-for-tests-only!"))
        self.active_tokens.add(token)
        return token

    def role_names(self, user_id):
        return set(self.mappings.get(user_id, ()))

    # ---- transport ----

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        path = request.url.path
        if (request.method, path) in self.overrides:
            status_code, kwargs = self.overrides[(request.method, path)]
            return httpx.Response(status_code, **kwargs)
        oidc = f"/realms/{REALM}/protocol/openid-connect"
        admin = f"/admin/realms/{REALM}"

        if path == f"{oidc}/token/introspect":
            return self._introspect(request)
        if path == f"{oidc}/token":
            self.admin_token_requests += 1
            return httpx.Response(200, json={
                "access_token": f"admin-{self.admin_token_requests}",
                "expires_in": self.admin_expires_in,
            })
        if path.startswith(admin):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer admin-") or auth[len("Bearer "):] in self.revoked_admin_tokens:
                return httpx.Response(401, json={"error": "unauthorized"})
            return self._admin(request, path[len(admin):].strip("/").split("/"))
        return httpx.Response(404)

    def _introspect(self, request):
        if self.introspect_error is not None:
            raise self.introspect_error
        if self.introspect_status != 200:
            return httpx.Response(self.introspect_status, json={"error": "failed"})
        form = parse_qs(request.content.decode())
        token = form.get("token", [""])[0]
        if token not in self.active_tokens:
            return httpx.Response(200, json={"active": False})
        return httpx.Response(200, json={"active": True})

    def _admin(self, request, parts):
        method = request.method
        body = json.loads(request.content) if request.content else None

        if parts == ["users"] and method == "GET":
            return httpx.Response(200, json=list(self.users.values()))

        if parts[0] == "users" and len(parts) >= 2:
            user_id = parts[1]
            if user_id not in self.users:
                return httpx.Response(404, json={"error": "User not found"})
            if len(parts) == 2:
                if method == "GET":
                    return httpx.Response(200, json=self.users[user_id])
                if method == "PUT":
                    self.users[user_id].update(body or {})
                    return httpx.Response(204)
                if method == "DELETE":
                    del self.users[user_id]
                    self.mappings.pop(user_id, None)
                    return httpx.Response(204)
            if parts[2:] == ["role-mappings", "realm"]:
                granted = self.mappings.setdefault(user_id, set())
                if method == "GET":
                    return httpx.Response(200, json=[self.roles[name] for name in sorted(granted)])
                if method == "POST":
                    if self.fail_role_grants:
                        return httpx.Response(500, json={"error": "unknown_error"})
                    granted.update(role["name"] for role in body)
                    return httpx.Response(204)
                if method == "DELETE":
                    granted.difference_update(role["name"] for role in body)
                    return httpx.Response(204)

        if parts[0] == "roles":
            if len(parts) == 1 and method == "POST":
                if body["name"] in self.roles:
                    return httpx.Response(409, json={"errorMessage": "Role already exists"})
                self.roles[body["name"]] = {"id": f"role-{body['name']}", **body}
                return httpx.Response(201)
            name = parts[1]
            if name not in self.roles:
                return httpx.Response(404, json={"error": "Could not find role"})
            if len(parts) == 2 and method == "GET":
                return httpx.Response(200, json=self.roles[name])
            if parts[2:] == ["users"] and method == "GET":
                members = [self.users[uid] for uid, granted in self.mappings.items() if name in granted]
                return httpx.Response(200, json=members)

        return httpx.Response(405)


@pytest.fixture
def fake_keycloak():
    return FakeKeycloak()


@pytest.fixture
def keycloak_client(fake_keycloak):
    return KeycloakClient(
        base_url=KEYCLOAK_URL,
        realm=REALM,
        client_id="test-client",
        client_secret="test-secret",
        http_client=httpx.AsyncClient(base_url=KEYCLOAK_URL, transport=httpx.MockTransport(fake_keycloak.handler)),
    )


@pytest.fixture
def keycloak_settings():
    return Settings(
        AUTH_SCHEME="keycloak",
        ENVIRONMENT="testing",
        KEYCLOAK_BASE_URL=KEYCLOAK_URL,
        KEYCLOAK_REALM=REALM,
        KEYCLOAK_CLIENT_ID="test-client",
        KEYCLOAK_CLIENT_SECRET="test-secret",
    )


@pytest.fixture
def keycloak_app(keycloak_settings, keycloak_client):
    return create_app(keycloak_settings, keycloak_client=keycloak_client)


@pytest.fixture
def keycloak_test_client(keycloak_app):
    with TestClient(keycloak_app) as client:
        yield client
