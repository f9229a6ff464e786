from datetime import date
from decimal import Decimal

import pydantic
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.models import UserRole
from src.core.auth.service import AuthService
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.fee_catalog.models import FeeFrequency
from src.modules.fee_catalog.schemas import FeeCatalogCreate, FeeCatalogFilters, FeeCatalogUpdate
from src.modules.fee_catalog.service import FeeCatalogService
from src.modules.ledger.schemas import LedgerEntryCreate
from src.modules.ledger.service import LedgerService


class TestFeeCatalogService:
    """Tests for fee catalog management."""

    async def test_create_entry(self, db_session: AsyncSession, ledger_data: dict):
        service = FeeCatalogService(db_session)

        entry = await service.create_entry(
            FeeCatalogCreate(
                name="Admission",
                amount=Decimal("2500.00"),
                frequency=FeeFrequency.ONE_TIME,
                grade_id=ledger_data["grade1_id"],
                academic_year_id=ledger_data["year_id"],
                due_days=7,
            ),
            ledger_data["user_id"],
        )

        assert entry.id is not None
        assert entry.amount == Decimal("2500.00")
        assert entry.frequency == "one_time"
        assert entry.resolve_due_date(date(2026, 3, 1)) == date(2026, 3, 8)

    async def test_create_with_unknown_scope(self, db_session: AsyncSession, ledger_data: dict):
        service = FeeCatalogService(db_session)

        with pytest.raises(NotFoundError):
            await service.create_entry(
                FeeCatalogCreate(name="Trip", amount=Decimal("100"), grade_id=999),
                ledger_data["user_id"],
            )
        with pytest.raises(NotFoundError):
            await service.create_entry(
                FeeCatalogCreate(name="Trip", amount=Decimal("100"), academic_year_id=999),
                ledger_data["user_id"],
            )

    async def test_single_due_policy(self):
        with pytest.raises(pydantic.ValidationError):
            FeeCatalogCreate(name="Lab", amount=Decimal("50"), due_date=date(2026, 4, 1), due_days=10)

    async def test_sub_cent_amount_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            FeeCatalogCreate(name="Lab", amount=Decimal("50.005"))

    async def test_update_unreferenced_amount(self, db_session: AsyncSession, ledger_data: dict):
        service = FeeCatalogService(db_session)

        entry = await service.update_entry(
            ledger_data["fee_id"], FeeCatalogUpdate(amount=Decimal("1200")), ledger_data["user_id"]
        )

        assert entry.amount == Decimal("1200.00")

    async def test_referenced_entry_freezes_financial_fields(
        self, db_session: AsyncSession, ledger_data: dict
    ):
        await LedgerService(db_session).create_entry(
            LedgerEntryCreate(
                student_id=ledger_data["student_id"], fee_catalog_entry_id=ledger_data["fee_id"]
            ),
            ledger_data["user_id"],
        )
        service = FeeCatalogService(db_session)

        with pytest.raises(ValidationError) as exc_info:
            await service.update_entry(
                ledger_data["fee_id"], FeeCatalogUpdate(amount=Decimal("1200")), ledger_data["user_id"]
            )
        assert exc_info.value.details["field"] == "amount"

        # Descriptive fields stay editable
        entry = await service.update_entry(
            ledger_data["fee_id"],
            FeeCatalogUpdate(name="Tuition (Term 1)", is_active=False),
            ledger_data["user_id"],
        )
        assert entry.name == "Tuition (Term 1)"
        assert entry.is_active is False
        assert entry.amount == Decimal("1000.00")

    async def test_update_cannot_set_both_due_policies(
        self, db_session: AsyncSession, ledger_data: dict
    ):
        service = FeeCatalogService(db_session)
        await service.update_entry(ledger_data["fee_id"], FeeCatalogUpdate(due_days=14), ledger_data["user_id"])

        with pytest.raises(ValidationError):
            await service.update_entry(
                ledger_data["fee_id"],
                FeeCatalogUpdate(due_date=date(2026, 5, 1)),
                ledger_data["user_id"],
            )

    async def test_list_entries_with_assigned_count(
        self, db_session: AsyncSession, ledger_data: dict
    ):
        service = FeeCatalogService(db_session)
        library = await service.create_entry(
            FeeCatalogCreate(name="Library", amount=Decimal("200"), frequency=FeeFrequency.ANNUAL),
            ledger_data["user_id"],
        )
        ledger = LedgerService(db_session)
        for student_id in (ledger_data["student_id"], ledger_data["other_student_id"]):
            await ledger.create_entry(
                LedgerEntryCreate(student_id=student_id, fee_catalog_entry_id=ledger_data["fee_id"]),
                ledger_data["user_id"],
            )

        rows, total = await service.list_entries(FeeCatalogFilters())
        assert total == 2
        assert [(e.name, count) for e, count in rows] == [("Library", 0), ("Tuition", 2)]

        rows, total = await service.list_entries(FeeCatalogFilters(frequency=FeeFrequency.ANNUAL))
        assert total == 1 and rows[0][0].id == library.id

        rows, _ = await service.list_entries(FeeCatalogFilters(search="tuit"))
        assert [e.name for e, _ in rows] == ["Tuition"]


class TestFeeCatalogEndpoints:
    async def test_only_admins_create(
        self, client: AsyncClient, db_session: AsyncSession, ledger_data: dict
    ):
        await AuthService(db_session).create_user(
            email="head@school.com",
            password="Head123!",
            full_name="Head Teacher",
            role=UserRole.ADMIN,
        )
        await db_session.commit()

        async def headers_for(email: str, password: str) -> dict:
            response = await client.post(
                "/api/v1/auth/login", json={"email": email, "password": password}
            )
            return {"Authorization": f"Bearer {response.json()['data']['access_token']}"}

        payload = {"name": "Sports", "amount": "300.00", "frequency": "annual"}

        response = await client.post(
            "/api/v1/fee-catalog",
            json=payload,
            headers=await headers_for("bursar@school.com", "Bursar123!"),
        )
        assert response.status_code == 403

        admin = await headers_for("head@school.com", "Head123!")
        response = await client.post("/api/v1/fee-catalog", json=payload, headers=admin)
        assert response.status_code == 201
        assert response.json()["data"]["frequency"] == "annual"

        response = await client.get("/api/v1/fee-catalog", headers=admin)
        assert response.status_code == 200
        assert response.json()["data"]["total"] == 2
