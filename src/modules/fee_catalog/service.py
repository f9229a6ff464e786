"""Service for the fee catalog."""

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.academic_years.models import AcademicYear
from src.modules.fee_catalog.models import FeeCatalogEntry
from src.modules.fee_catalog.schemas import (
    FeeCatalogCreate,
    FeeCatalogFilters,
    FeeCatalogSortField,
    FeeCatalogUpdate,
)
from src.modules.ledger.models import StudentFeeLedgerEntry
from src.modules.students.models import Grade
from src.shared.utils.money import round_money

# Fields frozen once a ledger entry references the catalog entry
FINANCIAL_FIELDS = ("amount", "grade_id", "academic_year_id", "due_date", "due_days")

_SORT_COLUMNS = {
    FeeCatalogSortField.NAME: FeeCatalogEntry.name,
    FeeCatalogSortField.AMOUNT: FeeCatalogEntry.amount,
    FeeCatalogSortField.DUE_DATE: FeeCatalogEntry.due_date,
    FeeCatalogSortField.CREATED_AT: FeeCatalogEntry.created_at,
}


class FeeCatalogService:
    """Service for managing fee catalog entries."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def create_entry(self, data: FeeCatalogCreate, created_by_id: int) -> FeeCatalogEntry:
        await self._check_scope(data.grade_id, data.academic_year_id)

        entry = FeeCatalogEntry(
            name=data.name,
            description=data.description,
            amount=round_money(data.amount),
            is_mandatory=data.is_mandatory,
            frequency=data.frequency.value,
            grade_id=data.grade_id,
            academic_year_id=data.academic_year_id,
            due_date=data.due_date,
            due_days=data.due_days,
            created_by_id=created_by_id,
        )
        self.db.add(entry)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="FeeCatalogEntry",
            entity_id=entry.id,
            user_id=created_by_id,
            entity_identifier=entry.name,
            new_values={"amount": str(entry.amount), "academic_year_id": entry.academic_year_id},
        )

        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def get_entry(self, entry_id: int) -> FeeCatalogEntry:
        result = await self.db.execute(
            select(FeeCatalogEntry).where(FeeCatalogEntry.id == entry_id)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("Fee catalog entry", entry_id)
        return entry

    async def get_catalog_entry(self, entry_id: int) -> FeeCatalogEntry:
        """Lookup used by the ledger engine when assigning fees."""
        return await self.get_entry(entry_id)

    async def is_referenced(self, entry_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(StudentFeeLedgerEntry.id)).where(
                StudentFeeLedgerEntry.fee_catalog_entry_id == entry_id
            )
        )
        return (result.scalar() or 0) > 0

    async def list_entries(
        self, filters: FeeCatalogFilters
    ) -> tuple[list[tuple[FeeCatalogEntry, int]], int]:
        """List catalog entries with the number of students each is assigned to."""
        query = select(FeeCatalogEntry)

        if filters.search:
            term = f"%{filters.search}%"
            query = query.where(
                or_(FeeCatalogEntry.name.ilike(term), FeeCatalogEntry.description.ilike(term))
            )
        if filters.grade_id is not None:
            query = query.where(FeeCatalogEntry.grade_id == filters.grade_id)
        if filters.academic_year_id is not None:
            query = query.where(FeeCatalogEntry.academic_year_id == filters.academic_year_id)
        if filters.frequency is not None:
            query = query.where(FeeCatalogEntry.frequency == filters.frequency.value)
        if filters.is_mandatory is not None:
            query = query.where(FeeCatalogEntry.is_mandatory.is_(filters.is_mandatory))
        if filters.is_active is not None:
            query = query.where(FeeCatalogEntry.is_active.is_(filters.is_active))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        assigned = (
            select(func.count(StudentFeeLedgerEntry.id))
            .where(StudentFeeLedgerEntry.fee_catalog_entry_id == FeeCatalogEntry.id)
            .correlate(FeeCatalogEntry)
            .scalar_subquery()
        )
        sort_column = _SORT_COLUMNS[filters.sort_by]
        query = (
            query.add_columns(assigned.label("assigned_students"))
            .order_by(sort_column.desc() if filters.sort_desc else sort_column.asc(), FeeCatalogEntry.id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )

        rows = (await self.db.execute(query)).all()
        return [(row[0], int(row[1] or 0)) for row in rows], total

    async def update_entry(
        self, entry_id: int, data: FeeCatalogUpdate, updated_by_id: int
    ) -> FeeCatalogEntry:
        entry = await self.get_entry(entry_id)
        changes = data.model_dump(exclude_unset=True)

        financial = {
            k: v for k, v in changes.items() if k in FINANCIAL_FIELDS and v != getattr(entry, k)
        }
        if financial and await self.is_referenced(entry_id):
            raise ValidationError(
                "Fee catalog entry is already assigned to students; "
                f"{', '.join(sorted(financial))} can no longer change. Create a new catalog entry instead.",
                field=sorted(financial)[0],
            )
        if "grade_id" in financial or "academic_year_id" in financial:
            await self._check_scope(
                changes.get("grade_id", entry.grade_id),
                changes.get("academic_year_id", entry.academic_year_id),
            )
        due_date = changes.get("due_date", entry.due_date)
        due_days = changes.get("due_days", entry.due_days)
        if due_date is not None and due_days is not None:
            raise ValidationError("Set either due_date or due_days, not both", field="due_date")

        old_values = {}
        new_values = {}
        for field, value in changes.items():
            current = getattr(entry, field)
            if field == "amount" and value is not None:
                value = round_money(value)
            if value == current:
                continue
            old_values[field] = str(current) if current is not None else None
            new_values[field] = str(value) if value is not None else None
            setattr(entry, field, value)

        if new_values:
            await self.audit.log(
                action=AuditAction.UPDATE,
                entity_type="FeeCatalogEntry",
                entity_id=entry_id,
                user_id=updated_by_id,
                entity_identifier=entry.name,
                old_values=old_values,
                new_values=new_values,
            )

        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def _check_scope(self, grade_id: int | None, academic_year_id: int | None) -> None:
        if grade_id is not None:
            grade = await self.db.scalar(select(Grade).where(Grade.id == grade_id))
            if grade is None:
                raise NotFoundError("Grade", grade_id)
        if academic_year_id is not None:
            year = await self.db.scalar(
                select(AcademicYear).where(AcademicYear.id == academic_year_id)
            )
            if year is None:
                raise NotFoundError("Academic year", academic_year_id)
