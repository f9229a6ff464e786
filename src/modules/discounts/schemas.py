"""Schemas for discount rules."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, model_validator

from src.modules.discounts.models import DiscountValueType
from src.shared.schemas.base import BaseSchema


class DiscountRuleCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    value_type: DiscountValueType
    value: Decimal = Field(..., gt=0)

    @model_validator(mode="after")
    def validate_percentage(self):
        """Validate percentage is not over 100."""
        if self.value_type == DiscountValueType.PERCENTAGE and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100%")
        return self


class DiscountRuleUpdate(BaseSchema):
    """Only descriptive fields and the active flag; value changes need a new rule."""

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    is_active: bool | None = None


class DiscountRuleResponse(BaseSchema):
    id: int
    name: str
    description: str | None
    value_type: str
    value: Decimal
    is_active: bool
    created_at: datetime


class DiscountPreview(BaseSchema):
    """What a rule would take off a given principal."""

    rule_id: int
    principal_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
