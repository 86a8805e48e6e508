"""
SQLAlchemy Models Package
"""

from mern_auth.models.user import User

__all__ = [
    "User",
]
