"""User (credential) and cleaner profile models."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cleanmatch.models.base import BaseModel


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    CLEANER = "cleaner"
    ADMIN = "admin"


# Roles a visitor may pick at registration; admins are provisioned out of band
SELF_REGISTERABLE_ROLES = (UserRole.CUSTOMER, UserRole.CLEANER)

CLEANING_FREQUENCIES = ("part-time", "full-time", "preferred-hours")
MAX_CLEANING_SERVICE_LENGTH = 100

UserRoleEnum = Enum(
    *(role.value for role in UserRole),
    name="user_role",
    create_constraint=True,
)


class User(BaseModel):
    """A CleanMatch account.

    ``token_invalidation_date`` implements "log out everywhere": any JWT whose
    ``iat`` is earlier than this stamp is rejected, whether or not it appears
    in the token blacklist. Logout-all, password reset and suspension all
    move the stamp forward.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    user_name: Mapped[str | None] = mapped_column(
        String(30), nullable=True, unique=True, index=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    role: Mapped[str] = mapped_column(UserRoleEnum, nullable=False, default=UserRole.CUSTOMER.value)

    # Address (required for cleaners)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    token_invalidation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_logout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cleaner_profile: Mapped["CleanerProfile | None"] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class CleanerProfile(BaseModel):
    """Service details collected when a cleaner registers."""

    __tablename__ = "cleaner_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    cleaning_services: Mapped[list[str]] = mapped_column(
        ARRAY(String(MAX_CLEANING_SERVICE_LENGTH)), nullable=False, default=list
    )
    cleaning_frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    preferred_hours: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user: Mapped[User] = relationship(back_populates="cleaner_profile")

    def __repr__(self) -> str:
        return f"<CleanerProfile user_id={self.user_id}>"
