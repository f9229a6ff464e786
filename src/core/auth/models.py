from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class UserRole(StrEnum):
    """Staff roles. Anyone signed in can read the ledger."""

    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    ACCOUNTANT = "Accountant"
    USER = "User"


# Roles allowed to change the ledger
FINANCE_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.ACCOUNTANT)


class User(BaseModel):
    """
    Staff account. The ledger records a user id as the actor on every
    assignment, payment, amendment and waiver.

    A user without a password hash exists only as an actor reference and
    cannot sign in.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def has_role(self, *roles: UserRole) -> bool:
        return self.role in {r.value for r in roles}

    @property
    def can_login(self) -> bool:
        return self.password_hash is not None

    @property
    def can_manage_ledger(self) -> bool:
        return self.is_active and self.has_role(*FINANCE_ROLES)
