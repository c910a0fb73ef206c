"""
Pickup outlet model.
"""

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from recycletrade.database.base import BaseModel


class Outlet(BaseModel):
    """
    Physical location where pickup orders are collected and paid.

    Attributes:
        name: Outlet display name
        location: City or area shown to customers
        address: Street address
        phone: Outlet contact phone
        email: Outlet contact email
        is_active: Whether the outlet accepts pickup orders
    """

    __tablename__ = "outlets"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_contact_dict(self) -> dict[str, Optional[str]]:
        return {
            "name": self.name,
            "location": self.location,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
        }
