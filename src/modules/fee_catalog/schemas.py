"""Pydantic schemas for the fee catalog."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import Field, model_validator

from src.modules.fee_catalog.models import FeeFrequency
from src.shared.schemas.base import BaseSchema


class FeeCatalogSortField(StrEnum):
    NAME = "name"
    AMOUNT = "amount"
    DUE_DATE = "due_date"
    CREATED_AT = "created_at"


class FeeCatalogCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    is_mandatory: bool = True
    frequency: FeeFrequency = FeeFrequency.TERMLY
    grade_id: int | None = None
    academic_year_id: int | None = None
    due_date: date | None = None
    due_days: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def one_due_policy(self):
        if self.due_date is not None and self.due_days is not None:
            raise ValueError("Set either due_date or due_days, not both")
        return self


class FeeCatalogUpdate(BaseSchema):
    """
    Partial update. Financial fields (amount, scope, due policy) are only
    accepted while no ledger entry references the catalog entry.
    """

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    is_mandatory: bool | None = None
    is_active: bool | None = None
    amount: Decimal | None = Field(None, ge=0, decimal_places=2)
    grade_id: int | None = None
    academic_year_id: int | None = None
    due_date: date | None = None
    due_days: int | None = Field(None, ge=0)


class FeeCatalogResponse(BaseSchema):
    id: int
    name: str
    description: str | None
    amount: Decimal
    is_mandatory: bool
    frequency: str
    grade_id: int | None
    academic_year_id: int | None
    due_date: date | None
    due_days: int | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class FeeCatalogListItem(FeeCatalogResponse):
    assigned_students: int = 0


class FeeCatalogFilters(BaseSchema):
    search: str | None = None
    grade_id: int | None = None
    academic_year_id: int | None = None
    frequency: FeeFrequency | None = None
    is_mandatory: bool | None = None
    is_active: bool | None = None
    sort_by: FeeCatalogSortField = FeeCatalogSortField.NAME
    sort_desc: bool = False
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
