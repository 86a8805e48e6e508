"""
Tests for local JWT verification and Keycloak introspection
"""

from datetime import timedelta

import httpx
import pytest
from joserfc import jwt
from joserfc.jwk import OctKey

from mern_auth.core.config import settings
from mern_auth.core.errors import InvalidCredential, VerificationUnavailable
from mern_auth.core.security import create_access_token
from mern_auth.core.token_validator import (
    KeycloakIntrospectionStrategy,
    LocalJWTValidationStrategy,
    decode_unverified_claims,
)


@pytest.fixture
def local_strategy():
    return LocalJWTValidationStrategy(
        secret_key=settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        issuer=settings.JWT_ISSUER,
    )


class TestLocalJWTValidation:
    @pytest.mark.asyncio
    async def test_valid_token(self, local_strategy):
        result = await local_strategy.validate(create_access_token(subject="user-1"))
        assert result.subject == "user-1"
        assert result.issuer == settings.JWT_ISSUER

    @pytest.mark.asyncio
    async def test_expired_token(self, local_strategy):
        token = create_access_token(subject="user-1", expires_delta=timedelta(seconds=-5))
        with pytest.raises(InvalidCredential):
            await local_strategy.validate(token)

    @pytest.mark.asyncio
    async def test_wrong_signature(self, local_strategy):
        token = create_access_token(subject="user-1", secret_key="another-secret-key-that-is-long-enough!!")
        with pytest.raises(InvalidCredential):
            await local_strategy.validate(token)

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, local_strategy):
        token = create_access_token(subject="user-1", additional_claims={"iss": "someone-else"})
        with pytest.raises(InvalidCredential):
            await local_strategy.validate(token)

    @pytest.mark.asyncio
    async def test_wrong_token_type(self, local_strategy):
        token = create_access_token(subject="user-1", additional_claims={"type": "refresh"})
        with pytest.raises(InvalidCredential):
            await local_strategy.validate(token)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["garbage", "a.b.c", ""])
    async def test_malformed_token(self, local_strategy, token):
        with pytest.raises(InvalidCredential):
            await local_strategy.validate(token)


class TestKeycloakIntrospection:
    @pytest.mark.asyncio
    async def test_active_token(self, keycloak_client, fake_keycloak):
        user_id = fake_keycloak.add_user("alice", roles=["user"])
        token = fake_keycloak.issue_token(user_id)

        result = await KeycloakIntrospectionStrategy(keycloak_client).validate(token)

        assert result.subject == user_id
        assert result.claims["preferred_username"] == "alice"
        assert result.claims["realm_access"]["roles"] == ["user"]

    @pytest.mark.asyncio
    async def test_inactive_token(self, keycloak_client, fake_keycloak):
        user_id = fake_keycloak.add_user("alice")
        token = fake_keycloak.issue_token(user_id)
        fake_keycloak.active_tokens.clear()

        with pytest.raises(InvalidCredential):
            await KeycloakIntrospectionStrategy(keycloak_client).validate(token)

    @pytest.mark.asyncio
    async def test_introspection_rejected_with_401(self, keycloak_client, fake_keycloak):
        fake_keycloak.introspect_status = 401
        with pytest.raises(InvalidCredential):
            await KeycloakIntrospectionStrategy(keycloak_client).validate("whatever")

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable_not_unauthorized(self, keycloak_client, fake_keycloak):
        fake_keycloak.introspect_status = 502
        with pytest.raises(VerificationUnavailable):
            await KeycloakIntrospectionStrategy(keycloak_client).validate("whatever")

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, keycloak_client, fake_keycloak):
        fake_keycloak.introspect_error = httpx.ReadTimeout("timed out")
        with pytest.raises(VerificationUnavailable):
            await KeycloakIntrospectionStrategy(keycloak_client).validate("whatever")

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self, keycloak_client, fake_keycloak):
        fake_keycloak.introspect_error = httpx.ConnectError("connection refused")
        with pytest.raises(VerificationUnavailable):
            await KeycloakIntrospectionStrategy(keycloak_client).validate("whatever")

    @pytest.mark.asyncio
    async def test_active_token_without_subject(self, keycloak_client, fake_keycloak):
        token = jwt.encode({"alg": "HS256"}, {"preferred_username": "ghost"}, OctKey.import_key("k" * 32))
        fake_keycloak.active_tokens.add(token)
        with pytest.raises(InvalidCredential):
            await KeycloakIntrospectionStrategy(keycloak_client).validate(token)


class TestDecodeUnverifiedClaims:
    def test_reads_payload(self):
        token = jwt.encode({"alg": "HS256"}, {"sub": "abc", "role": "admin"}, OctKey.import_key("k" * 32))
        assert decode_unverified_claims(token) == {"sub": "abc", "role": "admin"}

    def test_rejects_non_jws(self):
        with pytest.raises(InvalidCredential):
            decode_unverified_claims("not-a-token")


class TestUnusableIntrospectionReplies:
    INTROSPECT = ("POST", "/realms/test-realm/protocol/openid-connect/token/introspect")

    @pytest.mark.asyncio
    async def test_non_object_body_is_unavailable(self, keycloak_client, fake_keycloak):
        fake_keycloak.overrides[self.INTROSPECT] = (200, {"json": []})
        with pytest.raises(VerificationUnavailable):
            await KeycloakIntrospectionStrategy(keycloak_client).validate("a.b.c")

    @pytest.mark.asyncio
    async def test_non_json_body_is_unavailable(self, keycloak_client, fake_keycloak):
        fake_keycloak.overrides[self.INTROSPECT] = (200, {"text": "<html>proxy</html>"})
        with pytest.raises(VerificationUnavailable):
            await KeycloakIntrospectionStrategy(keycloak_client).validate("a.b.c")
