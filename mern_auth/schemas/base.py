"""
Base Pydantic Schemas
Common schemas and base classes for request/response models
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        validate_assignment=True,
        str_strip_whitespace=True,
        use_enum_values=True
    )


class MessageResponse(BaseModel):
    """Plain message response, also the shape of every error body"""
    message: str = Field(..., description="Human readable message")


class HealthStatus(str, Enum):
    """Health status enumeration"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class HealthCheck(BaseModel):
    """Health check response"""
    status: HealthStatus = Field(..., description="Overall health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    auth_scheme: str = Field(..., description="Active authentication scheme")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp")
    checks: Dict[str, Any] = Field(default_factory=dict, description="Individual health checks")


def validate_email(v: Any) -> str:
    """Validate email format"""
    if not isinstance(v, str):
        raise ValueError("Email must be a string")

    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Please enter a valid email")
    return v


def validate_non_empty_string(v: Any) -> str:
    """Validate non-empty string"""
    if not isinstance(v, str):
        raise ValueError("Must be a string")
    if not v.strip():
        raise ValueError("String cannot be empty")
    return v.strip()
