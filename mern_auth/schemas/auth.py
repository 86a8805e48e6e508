"""
Authentication Schemas
Pydantic models for local registration and login
"""

from typing import Optional
from pydantic import Field, field_validator

from mern_auth.core.rbac import Role
from mern_auth.schemas.base import BaseSchema, validate_email, validate_non_empty_string


class LoginRequest(BaseSchema):
    """Login request schema"""
    email: str = Field(..., description="Email address or username")
    password: str = Field(..., min_length=1, description="User password")

    @field_validator('email', 'password')
    @classmethod
    def validate_not_empty(cls, v):
        return validate_non_empty_string(v)


class RegisterRequest(BaseSchema):
    """User registration request schema"""
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    email: str = Field(..., description="User email address")
    password: str = Field(..., min_length=6, max_length=128, description="User password")
    role: Optional[Role] = Field(None, description="Requested role, defaults to user")

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        return validate_non_empty_string(v)


class AccountInfo(BaseSchema):
    """Account as returned by register/login"""
    id: str
    username: str
    email: str
    role: str


class AuthResponse(BaseSchema):
    """Register/login response with the issued bearer token"""
    message: str
    token: str
    user: AccountInfo
