"""
Authentication and authorization errors.

Each error maps to one HTTP status and a human readable message; the
application exception handlers render them as ``{"message": ...}``.
"""

from __future__ import annotations

from fastapi import status


class AuthError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Authorization error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> dict[str, str] | None:
        if self.status_code == status.HTTP_401_UNAUTHORIZED:
            return {"WWW-Authenticate": "Bearer"}
        return None


class Unauthenticated(AuthError):
    """No bearer credential was supplied."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access token is required"


class InvalidCredential(AuthError):
    """A credential was supplied but is bad, expired or points to a deleted principal."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired token"


class VerificationUnavailable(AuthError):
    """The credential could not be checked because the verifier backend is unreachable."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Authentication service unavailable"


class Forbidden(AuthError):
    """The caller is authenticated but lacks the required role or permission."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"
