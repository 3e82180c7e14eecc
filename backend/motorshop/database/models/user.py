"""
User model with shop roles.

Users are customers who own orders, employees who work them, and
administrators who receive audit notifications.
"""

import enum

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from motorshop.database.base import BaseModel, enum_type


class UserRole(str, enum.Enum):
    """User role enumeration."""

    SUPER_ADMINISTRATOR = "Super Administrator"
    ADMINISTRATOR = "Administrator"
    EMPLOYEE = "Employee"
    CUSTOMER = "Customer"

    @classmethod
    def admin_roles(cls) -> tuple["UserRole", ...]:
        """Roles that receive order audit notifications."""
        return (cls.SUPER_ADMINISTRATOR, cls.ADMINISTRATOR)

    def is_admin(self) -> bool:
        return self in UserRole.admin_roles()


class User(BaseModel):
    """
    Shop user.

    Attributes:
        id: Surrogate identifier
        name: Display name
        email: Unique login e-mail
        role: Shop role
        is_active: Inactive users receive no notifications
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="User display name",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="User e-mail address",
    )

    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
        default=UserRole.CUSTOMER,
        comment="Shop role",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the user account is active",
    )

    __table_args__ = (
        Index("ix_users_role_active", "role", "is_active"),
    )
