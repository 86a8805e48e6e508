"""
Security utilities for JWT issuance, bearer parsing and password hashing
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union, Any

from joserfc import jwt as jose_jwt
from joserfc.jwk import OctKey
from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher
import structlog

from mern_auth.core.config import settings
from mern_auth.core.errors import Unauthenticated

logger = structlog.get_logger()

# Password hashing context
pwd_context = PasswordHash((BcryptHasher(rounds=settings.BCRYPT_ROUNDS),))

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header

    Args:
        authorization: Raw header value, possibly missing

    Returns:
        The bearer token

    Raises:
        Unauthenticated: If the header is missing or not a bearer credential
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        logger.warning("Missing or malformed authorization header")
        raise Unauthenticated()

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token or any(ch.isspace() for ch in token):
        logger.warning("Malformed bearer token")
        raise Unauthenticated()

    return token


def create_access_token(
    subject: Union[str, Any],
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
    additional_claims: Optional[dict] = None
) -> str:
    """
    Create JWT access token

    Args:
        subject: Token subject (credential record id)
        expires_delta: Custom expiration time
        secret_key: Signing secret, defaults to the configured one
        additional_claims: Additional claims to include in token

    Returns:
        Encoded JWT token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
        "sub": str(subject),
        "type": "access",
        "iss": settings.JWT_ISSUER,
    }
    if additional_claims:
        to_encode.update(additional_claims)

    key = OctKey.import_key(secret_key or settings.JWT_SECRET_KEY)
    encoded_jwt = jose_jwt.encode({"alg": settings.JWT_ALGORITHM}, to_encode, key)

    logger.debug("Access token created", subject=str(subject), expires=expire.isoformat())
    return encoded_jwt


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password from the credential store

    Returns:
        True if password matches, False otherwise
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error("Password verification error", error=str(e))
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password

    Args:
        password: Plain text password

    Returns:
        Hashed password
    """
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        password = password_bytes[:72].decode("utf-8", errors="ignore")
        logger.warning("Password truncated to 72 bytes for bcrypt")

    return pwd_context.hash(password)
