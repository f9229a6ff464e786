"""Schemas for the student fee ledger."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, model_validator

from src.modules.ledger.models import LedgerStatus, PaymentMethod
from src.shared.schemas.base import BaseSchema


# --- Requests ---


class LedgerEntryCreate(BaseSchema):
    """Assign a catalog fee to a student.

    The discount is either an explicit amount or a discount rule evaluated once,
    now, against the catalog amount.
    """

    student_id: int
    fee_catalog_entry_id: int
    academic_year_id: int | None = None
    discount_amount: Decimal | None = Field(None, ge=0, decimal_places=2)
    discount_rule_id: int | None = None
    due_date: date | None = None

    @model_validator(mode="after")
    def one_discount_source(self):
        if self.discount_amount is not None and self.discount_rule_id is not None:
            raise ValueError("Provide either discount_amount or discount_rule_id, not both")
        return self


class BulkAssignRequest(BaseSchema):
    fee_catalog_entry_id: int
    student_ids: list[int] = Field(..., min_length=1)
    academic_year_id: int | None = None
    discount_amount: Decimal | None = Field(None, ge=0, decimal_places=2)
    discount_rule_id: int | None = None
    due_date: date | None = None

    @model_validator(mode="after")
    def one_discount_source(self):
        if self.discount_amount is not None and self.discount_rule_id is not None:
            raise ValueError("Provide either discount_amount or discount_rule_id, not both")
        return self


class PaymentCreate(BaseSchema):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod
    payment_date: date | None = None
    external_reference: str | None = Field(None, min_length=1, max_length=100)
    bank_name: str | None = Field(None, max_length=100)
    cheque_number: str | None = Field(None, max_length=50)
    cheque_date: date | None = None
    remarks: str | None = None

    @model_validator(mode="after")
    def cheque_details(self):
        if self.payment_method == PaymentMethod.CHEQUE and not self.cheque_number:
            raise ValueError("cheque_number is required for cheque payments")
        return self


class DiscountAmend(BaseSchema):
    discount_amount: Decimal = Field(..., ge=0, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=500)


class WaiveRequest(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=500)


class LedgerFilters(BaseSchema):
    student_id: int | None = None
    academic_year_id: int | None = None
    fee_catalog_entry_id: int | None = None
    status: LedgerStatus | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


# --- Responses ---


class PaymentResponse(BaseSchema):
    id: int
    ledger_entry_id: int
    receipt_number: str
    external_reference: str | None
    amount: Decimal
    payment_method: str
    payment_date: date
    bank_name: str | None
    cheque_number: str | None
    cheque_date: date | None
    remarks: str | None
    recorded_by_id: int
    created_at: datetime


class LedgerEntryView(BaseSchema):
    """A ledger entry with its derived figures. `status` is as of today."""

    id: int
    entry_number: str
    student_id: int
    fee_catalog_entry_id: int
    academic_year_id: int
    principal_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    discount_rule_id: int | None
    due_date: date
    status: LedgerStatus
    paid_total: Decimal
    balance: Decimal
    version: int
    created_by_id: int
    created_at: datetime
    updated_at: datetime


class PaymentResult(BaseSchema):
    """Outcome of recording a payment, consistent as of the same transaction."""

    payment: PaymentResponse
    paid_total: Decimal
    balance: Decimal
    status: LedgerStatus
    already_applied: bool = False


class BulkAssignSkip(BaseSchema):
    student_id: int
    reason: str


class BulkAssignResult(BaseSchema):
    created: list[LedgerEntryView]
    skipped: list[BulkAssignSkip]


class StudentFeesSummary(BaseSchema):
    total_fees: int
    total_amount: Decimal
    total_paid: Decimal
    total_balance: Decimal
    by_status: dict[str, int]


class StudentFeesResponse(BaseSchema):
    student_id: int
    academic_year_id: int | None
    entries: list[LedgerEntryView]
    summary: StudentFeesSummary


class PaymentHistorySummary(BaseSchema):
    total_payments: int
    total_amount: Decimal
    first_payment_date: date | None
    last_payment_date: date | None


class PaymentHistoryResponse(BaseSchema):
    student_id: int
    payments: list[PaymentResponse]
    summary: PaymentHistorySummary


class OverdueRefreshResult(BaseSchema):
    updated: int
    as_of: date
