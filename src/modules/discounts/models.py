"""Discount rule model."""

from decimal import Decimal
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class DiscountValueType(StrEnum):
    """Discount value type."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


class DiscountRule(BaseModel):
    """
    Named reduction (e.g. "Sibling 10%", "Staff child 5000").

    A rule is evaluated once, when a fee is assigned; the resulting amount is
    copied onto the ledger entry. Editing or deactivating a rule never
    changes entries that already used it.
    """

    __tablename__ = "discount_rules"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    value_type: Mapped[str] = mapped_column(String(20), nullable=False)  # fixed | percentage
    value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)  # amount or percent

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )

    @property
    def is_percentage(self) -> bool:
        return self.value_type == DiscountValueType.PERCENTAGE.value
