from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.exceptions import DuplicateError, NotFoundError
from src.modules.academic_years.models import AcademicYear
from src.modules.academic_years.schemas import AcademicYearCreate


class AcademicYearService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_year(self, year_id: int) -> AcademicYear:
        result = await self.db.execute(select(AcademicYear).where(AcademicYear.id == year_id))
        year = result.scalar_one_or_none()
        if year is None:
            raise NotFoundError("Academic year", year_id)
        return year

    async def get_current_year(self) -> AcademicYear | None:
        result = await self.db.execute(
            select(AcademicYear).where(AcademicYear.is_current.is_(True))
        )
        return result.scalar_one_or_none()

    async def list_years(self) -> list[AcademicYear]:
        result = await self.db.execute(
            select(AcademicYear).order_by(AcademicYear.start_date.desc())
        )
        return list(result.scalars().all())

    async def create_year(self, data: AcademicYearCreate, created_by_id: int) -> AcademicYear:
        """Create an academic year. Marking it current un-marks the previous one."""
        existing = await self.db.execute(
            select(AcademicYear).where(AcademicYear.name == data.name)
        )
        if existing.scalar_one_or_none():
            raise DuplicateError("AcademicYear", "name", data.name)

        if data.is_current:
            await self.db.execute(
                update(AcademicYear)
                .where(AcademicYear.is_current.is_(True))
                .values(is_current=False)
            )

        year = AcademicYear(
            name=data.name,
            start_date=data.start_date,
            end_date=data.end_date,
            is_current=data.is_current,
            created_by_id=created_by_id,
        )
        self.db.add(year)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="AcademicYear",
            entity_id=year.id,
            user_id=created_by_id,
            entity_identifier=year.name,
            new_values={"name": year.name, "is_current": year.is_current},
        )

        await self.db.commit()
        await self.db.refresh(year)
        return year
