"""Student fee ledger models: one obligation per student, plus its payments."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BaseModel, BigIntPK


class LedgerStatus(StrEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    WAIVED = "waived"


class PaymentMethod(StrEnum):
    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    CARD = "card"
    UPI = "upi"
    MPESA = "mpesa"


class StudentFeeLedgerEntry(BaseModel):
    """
    A fee owed by one student.

    final_amount = principal_amount - discount_amount. The balance is never
    stored: it is final_amount minus the sum of the entry's payments.
    `version` is bumped on every write so concurrent writers can detect a
    stale read.
    """

    __tablename__ = "student_fee_ledger_entries"

    entry_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("students.id"), nullable=False, index=True
    )
    fee_catalog_entry_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fee_catalog_entries.id"), nullable=False, index=True
    )
    academic_year_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("academic_years.id"), nullable=False, index=True
    )

    principal_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    final_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    # Provenance only; the amount above is a snapshot
    discount_rule_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("discount_rules.id"), nullable=True
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LedgerStatus.PENDING.value, index=True
    )
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    created_by_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "fee_catalog_entry_id",
            "academic_year_id",
            name="uq_student_fee_ledger_entries_assignment",
        ),
        CheckConstraint("principal_amount >= 0", name="principal_non_negative"),
        CheckConstraint(
            "discount_amount >= 0 AND discount_amount <= principal_amount",
            name="discount_within_principal",
        ),
    )

    @property
    def is_waived(self) -> bool:
        return self.status == LedgerStatus.WAIVED.value

    @property
    def is_paid(self) -> bool:
        return self.status == LedgerStatus.PAID.value


class FeePayment(Base):
    """
    One payment against a ledger entry. Append-only: rows are never updated
    or deleted.
    """

    __tablename__ = "fee_payments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    ledger_entry_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("student_fee_ledger_entries.id"), nullable=False, index=True
    )

    receipt_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )
    # Idempotency key supplied by the caller (bank ref, gateway transaction id)
    external_reference: Mapped[str | None] = mapped_column(
        String(100), nullable=True, unique=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cheque_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    recorded_by_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (CheckConstraint("amount > 0", name="amount_positive"),)
