"""
User Model
Local credential record
"""

from sqlalchemy import Column, String, CheckConstraint
from mern_auth.core.rbac import Role
from mern_auth.models.base import BaseModel


class User(BaseModel):
    """Credential record for the local username/password scheme"""
    __tablename__ = "users"

    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(254), nullable=False, unique=True, index=True)
    hashed_password = Column(String(128), nullable=False)

    # Exactly one role per record
    role = Column(String(20), nullable=False, default=Role.USER.value, index=True)

    __table_args__ = (
        CheckConstraint("role in ('user', 'moderator', 'admin')", name="ck_users_role"),
    )

    def __repr__(self):
        return f"<User(username='{self.username}', role='{self.role}')>"
