"""
Authentication Endpoints
Local registration and login issuing bearer tokens
"""

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from mern_auth.core.deps import get_credential_store
from mern_auth.core.rbac import Role
from mern_auth.core.security import create_access_token, get_password_hash, verify_password
from mern_auth.schemas.auth import AccountInfo, AuthResponse, LoginRequest, RegisterRequest
from mern_auth.services.credential_store import CredentialStore

logger = structlog.get_logger()
router = APIRouter()


def _auth_response(message: str, record: Any) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=create_access_token(subject=record.id),
        user=AccountInfo(
            id=str(record.id),
            username=record.username,
            email=record.email,
            role=record.role,
        ),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    register_data: RegisterRequest,
    store: CredentialStore = Depends(get_credential_store),
) -> Any:
    """
    Register a local account and sign the caller in

    Raises:
        HTTPException: If the username or email is already taken
    """
    existing = await store.find_by_username_or_email(
        username=register_data.username,
        email=register_data.email,
    )
    if existing:
        logger.warning("Registration attempt with existing credentials", username=register_data.username)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email or username already exists",
        )

    # Bcrypt is CPU bound, keep it off the event loop
    hashed_password = await asyncio.to_thread(get_password_hash, register_data.password)
    record = await store.create(
        username=register_data.username,
        email=register_data.email,
        hashed_password=hashed_password,
        role=register_data.role or Role.USER.value,
    )

    logger.info("User registered", user_id=str(record.id), role=record.role)
    return _auth_response("User registered successfully", record)


@router.post("/login", response_model=AuthResponse)
async def login(
    login_data: LoginRequest,
    store: CredentialStore = Depends(get_credential_store),
) -> Any:
    """
    Sign in with username or email and password

    Raises:
        HTTPException: If the credentials do not match an account
    """
    record = await store.find_by_username_or_email(
        username=login_data.email,
        email=login_data.email.lower(),
    )

    valid = record is not None and await asyncio.to_thread(
        verify_password, login_data.password, record.hashed_password
    )
    if not valid:
        logger.warning("Failed login attempt", login=login_data.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    logger.info("User logged in", user_id=str(record.id))
    return _auth_response("Login successful", record)
