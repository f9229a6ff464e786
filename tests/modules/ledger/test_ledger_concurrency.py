"""Concurrent requests against one ledger entry, on a file-backed SQLite database."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.database.base import Base
from src.core.database.session import enable_sqlite_immediate_transactions
from src.core.exceptions import ConflictError, ValidationError
from src.modules.ledger.models import FeePayment, LedgerStatus, PaymentMethod, StudentFeeLedgerEntry
from src.modules.ledger.schemas import LedgerEntryCreate, PaymentCreate, PaymentResult
from src.modules.ledger.service import LedgerService


@pytest.fixture
async def file_sessions(tmp_path):
    """Session factory over a real file, so each session has its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    enable_sqlite_immediate_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def _setup_entry(file_sessions, seed_ledger, discount: str) -> tuple[dict, int]:
    async with file_sessions() as session:
        ids = await seed_ledger(session)
        entry = await LedgerService(session).create_entry(
            LedgerEntryCreate(
                student_id=ids["student_id"],
                fee_catalog_entry_id=ids["fee_id"],
                discount_amount=Decimal(discount),
            ),
            ids["user_id"],
        )
    return ids, entry.id


async def test_concurrent_payments_never_exceed_final_amount(file_sessions, seed_ledger):
    ids, entry_id = await _setup_entry(file_sessions, seed_ledger, "200")  # final 800.00

    async def pay(i: int):
        async with file_sessions() as session:
            try:
                return await LedgerService(session).record_payment(
                    entry_id,
                    PaymentCreate(
                        amount=Decimal("200.00"),
                        payment_method=PaymentMethod.MPESA,
                        external_reference=f"MPESA-{i}",
                    ),
                    ids["user_id"],
                )
            except (ValidationError, ConflictError) as exc:
                return exc

    results = await asyncio.gather(*(pay(i) for i in range(5)))

    accepted = [r for r in results if isinstance(r, PaymentResult)]
    rejected = [r for r in results if isinstance(r, ValidationError)]
    assert len(accepted) == 4
    assert len(rejected) == 1
    assert [r.status for r in accepted].count(LedgerStatus.PAID) == 1

    async with file_sessions() as session:
        total = await session.scalar(
            select(func.sum(FeePayment.amount)).where(FeePayment.ledger_entry_id == entry_id)
        )
        view = await LedgerService(session).get_entry(entry_id)
    assert Decimal(str(total)) == Decimal("800.00")
    assert view.balance == Decimal("0.00")
    assert view.status == LedgerStatus.PAID
    assert view.version == 4


async def test_concurrent_retries_of_one_payment_apply_once(file_sessions, seed_ledger):
    ids, entry_id = await _setup_entry(file_sessions, seed_ledger, "0")

    async def pay():
        async with file_sessions() as session:
            return await LedgerService(session).record_payment(
                entry_id,
                PaymentCreate(
                    amount=Decimal("350.00"),
                    payment_method=PaymentMethod.BANK_TRANSFER,
                    external_reference="BANK-REF-0042",
                ),
                ids["user_id"],
            )

    results = await asyncio.gather(*(pay() for _ in range(3)))

    assert [r.already_applied for r in results].count(False) == 1
    assert len({r.payment.receipt_number for r in results}) == 1
    assert all(r.balance == Decimal("650.00") for r in results)

    async with file_sessions() as session:
        count = await session.scalar(
            select(func.count(FeePayment.id)).where(FeePayment.ledger_entry_id == entry_id)
        )
    assert count == 1


async def test_concurrent_assignment_creates_one_entry(file_sessions, seed_ledger):
    async with file_sessions() as session:
        ids = await seed_ledger(session)

    async def assign():
        async with file_sessions() as session:
            try:
                return await LedgerService(session).create_entry(
                    LedgerEntryCreate(
                        student_id=ids["student_id"], fee_catalog_entry_id=ids["fee_id"]
                    ),
                    ids["user_id"],
                )
            except ConflictError as exc:
                return exc

    results = await asyncio.gather(assign(), assign())

    assert sum(isinstance(r, ConflictError) for r in results) == 1

    async with file_sessions() as session:
        count = await session.scalar(select(func.count(StudentFeeLedgerEntry.id)))
    assert count == 1
