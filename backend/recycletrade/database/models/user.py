"""
User model with marketplace roles.

Accounts are created and authenticated by the identity service; this service
only reads them to resolve customer contact details and to authorize sellers
and administrators acting on orders.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from recycletrade.database.base import BaseModel


class UserRole(str, enum.Enum):
    """User role enumeration for role-based access control."""

    BUYER = "buyer"
    SELLER = "seller"
    SELLER_CANDIDATE = "seller_candidate"
    ADMIN = "admin"
    COMPANY = "company"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert string to UserRole enum.

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid role: {value}")

    @property
    def is_staff(self) -> bool:
        """Administrative roles may act on any order."""
        return self in (UserRole.ADMIN, UserRole.COMPANY)


class User(BaseModel):
    """
    Marketplace account.

    Attributes:
        id: Unique user identifier (UUID)
        email: Login and notification address
        first_name: Given name
        last_name: Family name
        phone: Contact phone number as entered by the user
        role: Marketplace role
        is_active: Whether the account may authenticate
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="User email address",
    )

    first_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="User first name",
    )

    last_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="User last name",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="User phone number",
    )

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(
            UserRole,
            name="user_role",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        nullable=False,
        default=UserRole.BUYER,
        comment="User role for access control",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the account is active",
    )

    __table_args__ = (
        Index("ix_users_email", "email"),
        Index("ix_users_role", "role"),
        {"comment": "Marketplace user accounts"},
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
