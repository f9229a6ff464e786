"""API endpoints for discount rules."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import AdminUser, CurrentUser
from src.core.database.session import get_db
from src.modules.discounts.schemas import (
    DiscountPreview,
    DiscountRuleCreate,
    DiscountRuleResponse,
    DiscountRuleUpdate,
)
from src.modules.discounts.service import DiscountService
from src.shared.schemas.base import ApiResponse
from src.shared.utils.money import round_money

router = APIRouter(prefix="/discount-rules", tags=["Discount Rules"])


@router.post(
    "",
    response_model=ApiResponse[DiscountRuleResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_rule(
    data: DiscountRuleCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    rule = await DiscountService(db).create_rule(data, current_user.id)
    return ApiResponse(
        data=DiscountRuleResponse.model_validate(rule),
        message="Discount rule created successfully",
    )


@router.get("", response_model=ApiResponse[list[DiscountRuleResponse]])
async def list_rules(
    current_user: CurrentUser,
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    rules = await DiscountService(db).list_rules(include_inactive=include_inactive)
    return ApiResponse(data=[DiscountRuleResponse.model_validate(r) for r in rules])


@router.get("/{rule_id}", response_model=ApiResponse[DiscountRuleResponse])
async def get_rule(
    rule_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    rule = await DiscountService(db).get_rule(rule_id)
    return ApiResponse(data=DiscountRuleResponse.model_validate(rule))


@router.patch("/{rule_id}", response_model=ApiResponse[DiscountRuleResponse])
async def update_rule(
    rule_id: int,
    data: DiscountRuleUpdate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    rule = await DiscountService(db).update_rule(rule_id, data, current_user.id)
    return ApiResponse(
        data=DiscountRuleResponse.model_validate(rule),
        message="Discount rule updated successfully",
    )


@router.get("/{rule_id}/preview", response_model=ApiResponse[DiscountPreview])
async def preview_rule(
    rule_id: int,
    current_user: CurrentUser,
    principal: Decimal = Query(..., ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Show what the rule would take off a principal, without assigning anything."""
    discount = await DiscountService(db).resolve_discount(rule_id, principal)
    principal = round_money(principal)
    return ApiResponse(
        data=DiscountPreview(
            rule_id=rule_id,
            principal_amount=principal,
            discount_amount=discount,
            final_amount=principal - discount,
        )
    )
