from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.core.auth.models import UserRole
from src.core.auth.service import AuthService
from src.core.database.base import Base
from src.core.database import get_db
from src.main import app
from src.modules.academic_years.models import AcademicYear
from src.modules.fee_catalog.models import FeeCatalogEntry
from src.modules.students.models import Grade, Student, StudentStatus

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


async def seed_ledger_data(session: AsyncSession) -> dict[str, int]:
    """
    Staff user, two grades, three students (one inactive), a current academic
    year and a 1000.00 tuition fee for it. Returns ids only.
    """
    user = await AuthService(session).create_user(
        email="bursar@school.com",
        password="Bursar123!",
        full_name="School Bursar",
        role=UserRole.ACCOUNTANT,
    )

    grade1 = Grade(code="G1", name="Grade 1", display_order=1, is_active=True)
    grade2 = Grade(code="G2", name="Grade 2", display_order=2, is_active=True)
    session.add_all([grade1, grade2])
    await session.flush()

    alice = Student(
        student_number="STU-000001",
        first_name="Alice",
        last_name="Wanjiru",
        grade_id=grade1.id,
        status=StudentStatus.ACTIVE.value,
    )
    brian = Student(
        student_number="STU-000002",
        first_name="Brian",
        last_name="Otieno",
        grade_id=grade2.id,
        status=StudentStatus.ACTIVE.value,
    )
    carol = Student(
        student_number="STU-000003",
        first_name="Carol",
        last_name="Mutua",
        grade_id=grade1.id,
        status=StudentStatus.INACTIVE.value,
    )
    session.add_all([alice, brian, carol])

    year = AcademicYear(
        name="2026",
        start_date=date(2026, 1, 5),
        end_date=date(2026, 11, 27),
        is_current=True,
        created_by_id=user.id,
    )
    session.add(year)
    await session.flush()

    tuition = FeeCatalogEntry(
        name="Tuition",
        description="Term tuition",
        amount=Decimal("1000.00"),
        is_mandatory=True,
        frequency="termly",
        academic_year_id=year.id,
        is_active=True,
        created_by_id=user.id,
    )
    session.add(tuition)
    await session.flush()

    ids = {
        "user_id": user.id,
        "grade1_id": grade1.id,
        "grade2_id": grade2.id,
        "student_id": alice.id,
        "other_student_id": brian.id,
        "inactive_student_id": carol.id,
        "year_id": year.id,
        "fee_id": tuition.id,
    }
    await session.commit()
    return ids


@pytest.fixture
def seed_ledger() -> Callable[[AsyncSession], Awaitable[dict[str, int]]]:
    """The seeding coroutine, for tests that manage their own sessions."""
    return seed_ledger_data


@pytest.fixture
async def ledger_data(db_session: AsyncSession) -> dict[str, int]:
    return await seed_ledger_data(db_session)
