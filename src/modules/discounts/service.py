"""Service for discount rules."""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.discounts.models import DiscountRule, DiscountValueType
from src.modules.discounts.schemas import DiscountRuleCreate, DiscountRuleUpdate
from src.shared.utils.money import percentage_of, round_money


def calculate_discount_amount(value_type: str, value: Decimal, principal: Decimal) -> Decimal:
    """
    Amount a discount takes off `principal`.

    Fixed discounts are capped at the principal; percentages are rounded to cents.
    """
    principal = round_money(principal)
    if value_type == DiscountValueType.FIXED.value:
        return min(round_money(value), principal)
    if value_type == DiscountValueType.PERCENTAGE.value:
        return min(percentage_of(principal, value), principal)
    raise ValidationError(f"Unknown discount type: {value_type}", field="value_type")


class DiscountService:
    """Service for managing discount rules."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def create_rule(self, data: DiscountRuleCreate, created_by_id: int) -> DiscountRule:
        existing = await self.db.execute(
            select(DiscountRule).where(DiscountRule.name == data.name)
        )
        if existing.scalar_one_or_none():
            raise DuplicateError("DiscountRule", "name", data.name)

        rule = DiscountRule(
            name=data.name,
            description=data.description,
            value_type=data.value_type.value,
            value=round_money(data.value),
            created_by_id=created_by_id,
        )
        self.db.add(rule)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="DiscountRule",
            entity_id=rule.id,
            user_id=created_by_id,
            entity_identifier=rule.name,
            new_values={"value_type": rule.value_type, "value": str(rule.value)},
        )

        await self.db.commit()
        await self.db.refresh(rule)
        return rule

    async def get_rule(self, rule_id: int) -> DiscountRule:
        result = await self.db.execute(select(DiscountRule).where(DiscountRule.id == rule_id))
        rule = result.scalar_one_or_none()
        if not rule:
            raise NotFoundError("Discount rule", rule_id)
        return rule

    async def list_rules(self, include_inactive: bool = False) -> list[DiscountRule]:
        query = select(DiscountRule).order_by(DiscountRule.name)
        if not include_inactive:
            query = query.where(DiscountRule.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_rule(
        self, rule_id: int, data: DiscountRuleUpdate, updated_by_id: int
    ) -> DiscountRule:
        rule = await self.get_rule(rule_id)
        old_values = {}
        new_values = {}

        if data.name is not None and data.name != rule.name:
            existing = await self.db.execute(
                select(DiscountRule).where(
                    DiscountRule.name == data.name, DiscountRule.id != rule_id
                )
            )
            if existing.scalar_one_or_none():
                raise DuplicateError("DiscountRule", "name", data.name)
            old_values["name"] = rule.name
            rule.name = data.name
            new_values["name"] = data.name

        if data.description is not None and data.description != rule.description:
            rule.description = data.description
            new_values["description"] = data.description

        if data.is_active is not None and data.is_active != rule.is_active:
            old_values["is_active"] = rule.is_active
            rule.is_active = data.is_active
            new_values["is_active"] = data.is_active

        if new_values:
            await self.audit.log(
                action=AuditAction.UPDATE,
                entity_type="DiscountRule",
                entity_id=rule_id,
                user_id=updated_by_id,
                entity_identifier=rule.name,
                old_values=old_values,
                new_values=new_values,
            )

        await self.db.commit()
        await self.db.refresh(rule)
        return rule

    async def resolve_discount(self, rule_id: int, principal: Decimal) -> Decimal:
        """Evaluate an active rule against a principal (snapshot at assignment time)."""
        rule = await self.get_rule(rule_id)
        if not rule.is_active:
            raise ValidationError(f"Discount rule '{rule.name}' is inactive", field="discount_rule_id")
        return calculate_discount_amount(rule.value_type, rule.value, principal)
