"""Fee catalog models."""

from datetime import date, timedelta
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class FeeFrequency(StrEnum):
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    TERMLY = "termly"
    ANNUAL = "annual"


class FeeCatalogEntry(BaseModel):
    """
    A fee that can be assigned to students (tuition, admission, library...).

    Scope is optional: a grade and/or an academic year. Once any ledger entry
    references a catalog entry, its amount, scope and due-date policy are
    frozen.
    """

    __tablename__ = "fee_catalog_entries"

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeFrequency.TERMLY.value
    )

    # Scope
    grade_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("grades.id"), nullable=True, index=True
    )
    academic_year_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("academic_years.id"), nullable=True, index=True
    )

    # Due-date policy: a fixed date, or N days after assignment
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    created_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="amount_non_negative"),
    )

    def resolve_due_date(self, assigned_on: date) -> date | None:
        """Due date for an assignment made on `assigned_on`, if the policy defines one."""
        if self.due_date is not None:
            return self.due_date
        if self.due_days is not None:
            return assigned_on + timedelta(days=self.due_days)
        return None
