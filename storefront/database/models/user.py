"""
User model.

Accounts are created and authenticated elsewhere. Orders only need the id,
the contact email and the role that decides admin access.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import BaseModel


class UserRole(str, enum.Enum):
    """Roles known to the storefront."""

    USER = "User"
    ADMIN = "Admin"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert a role name from a token claim, ignoring case.

        Raises:
            ValueError: If value is not a known role
        """
        for role in cls:
            if role.value.lower() == value.lower():
                return role
        raise ValueError(f"Invalid role: {value}")


class User(BaseModel):
    """Storefront account."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(
            UserRole,
            name="user_role",
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
        default=UserRole.USER,
        server_default=UserRole.USER.value,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )

    __table_args__ = (Index("ix_users_role", "role"),)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
