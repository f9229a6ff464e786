from decimal import Decimal

import pydantic
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.models import UserRole
from src.core.auth.service import AuthService
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.discounts.models import DiscountValueType
from src.modules.discounts.schemas import DiscountRuleCreate, DiscountRuleUpdate
from src.modules.discounts.service import DiscountService, calculate_discount_amount


class TestCalculateDiscountAmount:
    """Tests for discount evaluation."""

    def test_fixed(self):
        assert calculate_discount_amount("fixed", Decimal("150"), Decimal("1000")) == Decimal("150.00")

    def test_fixed_is_capped_at_principal(self):
        assert calculate_discount_amount("fixed", Decimal("5000"), Decimal("1000")) == Decimal("1000.00")

    def test_percentage(self):
        assert calculate_discount_amount("percentage", Decimal("10"), Decimal("1000")) == Decimal("100.00")

    def test_percentage_rounds_to_cents(self):
        # 12.5% of 333.33 = 41.66625
        assert calculate_discount_amount(
            "percentage", Decimal("12.5"), Decimal("333.33")
        ) == Decimal("41.67")

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            calculate_discount_amount("bogus", Decimal("1"), Decimal("10"))


class TestDiscountRuleService:
    """Tests for discount rule management."""

    async def test_create_rule(self, db_session: AsyncSession):
        service = DiscountService(db_session)

        rule = await service.create_rule(
            DiscountRuleCreate(
                name="Sibling", value_type=DiscountValueType.PERCENTAGE, value=Decimal("10")
            ),
            created_by_id=1,
        )

        assert rule.id is not None
        assert rule.value_type == "percentage"
        assert rule.is_percentage is True
        assert rule.is_active is True

    async def test_create_duplicate_rule(self, db_session: AsyncSession):
        service = DiscountService(db_session)
        data = DiscountRuleCreate(name="Staff", value_type=DiscountValueType.FIXED, value=Decimal("500"))
        await service.create_rule(data, created_by_id=1)

        with pytest.raises(DuplicateError):
            await service.create_rule(data, created_by_id=1)

    async def test_percentage_over_100_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            DiscountRuleCreate(name="Too much", value_type=DiscountValueType.PERCENTAGE, value=Decimal("120"))

    async def test_list_hides_inactive(self, db_session: AsyncSession):
        service = DiscountService(db_session)
        active = await service.create_rule(
            DiscountRuleCreate(name="A", value_type=DiscountValueType.FIXED, value=Decimal("10")), 1
        )
        retired = await service.create_rule(
            DiscountRuleCreate(name="B", value_type=DiscountValueType.FIXED, value=Decimal("20")), 1
        )
        await service.update_rule(retired.id, DiscountRuleUpdate(is_active=False), 1)

        assert [r.id for r in await service.list_rules()] == [active.id]
        assert len(await service.list_rules(include_inactive=True)) == 2

    async def test_resolve_discount(self, db_session: AsyncSession):
        service = DiscountService(db_session)
        rule = await service.create_rule(
            DiscountRuleCreate(name="Bursary", value_type=DiscountValueType.PERCENTAGE, value=Decimal("25")), 1
        )

        assert await service.resolve_discount(rule.id, Decimal("1000.00")) == Decimal("250.00")

        await service.update_rule(rule.id, DiscountRuleUpdate(is_active=False), 1)
        with pytest.raises(ValidationError):
            await service.resolve_discount(rule.id, Decimal("1000.00"))

    async def test_unknown_rule(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await DiscountService(db_session).get_rule(999)


class TestDiscountRuleEndpoints:
    async def _admin_headers(self, client: AsyncClient, db_session: AsyncSession) -> dict:
        await AuthService(db_session).create_user(
            email="admin@school.com",
            password="Admin123!",
            full_name="Admin",
            role=UserRole.ADMIN,
        )
        await db_session.commit()
        response = await client.post(
            "/api/v1/auth/login", json={"email": "admin@school.com", "password": "Admin123!"}
        )
        return {"Authorization": f"Bearer {response.json()['data']['access_token']}"}

    async def test_create_and_preview(self, client: AsyncClient, db_session: AsyncSession):
        headers = await self._admin_headers(client, db_session)

        response = await client.post(
            "/api/v1/discount-rules",
            json={"name": "Sibling", "value_type": "percentage", "value": "10"},
            headers=headers,
        )
        assert response.status_code == 201
        rule_id = response.json()["data"]["id"]

        response = await client.get(
            f"/api/v1/discount-rules/{rule_id}/preview",
            params={"principal": "1500"},
            headers=headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["discount_amount"]) == Decimal("150")
        assert Decimal(data["final_amount"]) == Decimal("1350")
