"""
Ledger engine: assigns fees to students and reconciles payments against them.

Every mutation of a ledger entry runs inside one transaction that
    1. re-reads the entry under a row lock (SELECT ... FOR UPDATE),
    2. recomputes the payment sum from the payment rows,
    3. validates against those fresh figures,
    4. writes the entry with a compare-and-swap on `version`.

The balance is never stored; it is always final_amount minus the payment sum.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from src.core.audit import AuditAction, AuditService
from src.core.config import settings
from src.core.database.session import atomic
from src.core.documents.number_generator import DocumentNumberGenerator, DocumentPrefix
from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.modules.academic_years.service import AcademicYearService
from src.modules.discounts.service import DiscountService
from src.modules.fee_catalog.models import FeeCatalogEntry
from src.modules.fee_catalog.service import FeeCatalogService
from src.modules.ledger.models import FeePayment, LedgerStatus, StudentFeeLedgerEntry
from src.modules.ledger.schemas import (
    BulkAssignRequest,
    BulkAssignResult,
    BulkAssignSkip,
    DiscountAmend,
    LedgerEntryCreate,
    LedgerEntryView,
    LedgerFilters,
    OverdueRefreshResult,
    PaymentCreate,
    PaymentHistoryResponse,
    PaymentHistorySummary,
    PaymentResponse,
    PaymentResult,
    StudentFeesResponse,
    StudentFeesSummary,
)
from src.modules.ledger.status import accepts_payments, derive_status, effective_status
from src.modules.students.service import StudentService
from src.shared.utils.money import ZERO, money_from_db, round_money

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for student fee ledger entries and their payments."""

    def __init__(self, db: AsyncSession, today: Callable[[], date] = date.today):
        self.db = db
        self.today = today
        self.audit = AuditService(db)
        self.students = StudentService(db)
        self.catalog = FeeCatalogService(db)
        self.discounts = DiscountService(db)
        self.years = AcademicYearService(db)

    # --- Assignment ---

    async def create_entry(self, data: LedgerEntryCreate, created_by_id: int) -> LedgerEntryView:
        """Assign a catalog fee to one student."""
        academic_year_id = None
        try:
            async with atomic(self.db):
                catalog_entry = await self._get_assignable_catalog_entry(data.fee_catalog_entry_id)
                academic_year_id = await self._resolve_academic_year(
                    data.academic_year_id, catalog_entry
                )
                view = await self._assign(
                    catalog_entry,
                    student_id=data.student_id,
                    academic_year_id=academic_year_id,
                    discount_amount=data.discount_amount,
                    discount_rule_id=data.discount_rule_id,
                    due_date=data.due_date,
                    created_by_id=created_by_id,
                )
        except IntegrityError:
            # Lost the race on the assignment key: the winner is now visible
            if academic_year_id is not None:
                existing = await self._find_assignment(
                    data.student_id, data.fee_catalog_entry_id, academic_year_id
                )
                if existing is not None:
                    raise self._assignment_conflict(existing)
            raise
        return view

    async def assign_to_students(
        self, data: BulkAssignRequest, created_by_id: int
    ) -> BulkAssignResult:
        """
        Assign one catalog fee to many students.

        Each student is its own transaction; students that cannot take the fee
        (inactive, wrong grade, already assigned) are reported, not fatal.
        """
        catalog_entry = await self._get_assignable_catalog_entry(data.fee_catalog_entry_id)
        academic_year_id = await self._resolve_academic_year(data.academic_year_id, catalog_entry)
        catalog_entry_id = catalog_entry.id

        created: list[LedgerEntryView] = []
        skipped: list[BulkAssignSkip] = []
        for student_id in dict.fromkeys(data.student_ids):
            try:
                view = await self.create_entry(
                    LedgerEntryCreate(
                        student_id=student_id,
                        fee_catalog_entry_id=catalog_entry_id,
                        academic_year_id=academic_year_id,
                        discount_amount=data.discount_amount,
                        discount_rule_id=data.discount_rule_id,
                        due_date=data.due_date,
                    ),
                    created_by_id,
                )
            except (ConflictError, NotFoundError, ValidationError) as exc:
                skipped.append(BulkAssignSkip(student_id=student_id, reason=exc.message))
                continue
            created.append(view)

        logger.info(
            "Bulk assignment of fee %s: %d created, %d skipped",
            catalog_entry_id,
            len(created),
            len(skipped),
        )
        return BulkAssignResult(created=created, skipped=skipped)

    async def _assign(
        self,
        catalog_entry: FeeCatalogEntry,
        student_id: int,
        academic_year_id: int,
        discount_amount: Decimal | None,
        discount_rule_id: int | None,
        due_date: date | None,
        created_by_id: int,
    ) -> LedgerEntryView:
        today = self.today()

        student = await self.students.get_student(student_id)
        if not student.is_active:
            raise ValidationError(
                f"Student {student.student_number} is not active", field="student_id"
            )
        if catalog_entry.grade_id is not None and catalog_entry.grade_id != student.grade_id:
            raise ValidationError(
                f"Fee '{catalog_entry.name}' is not applicable to the student's grade",
                field="fee_catalog_entry_id",
                details={"fee_grade_id": catalog_entry.grade_id, "student_grade_id": student.grade_id},
            )

        principal = round_money(catalog_entry.amount)
        if principal <= 0:
            raise ValidationError(
                f"Fee '{catalog_entry.name}' has no amount to charge", field="fee_catalog_entry_id"
            )

        if discount_rule_id is not None:
            discount = await self.discounts.resolve_discount(discount_rule_id, principal)
        else:
            discount = round_money(discount_amount or ZERO)
        if discount > principal:
            raise ValidationError(
                f"Discount {discount} exceeds principal amount {principal}",
                field="discount_amount",
                details={"discount_amount": str(discount), "principal_amount": str(principal)},
            )

        existing = await self._find_assignment(student.id, catalog_entry.id, academic_year_id)
        if existing is not None:
            raise self._assignment_conflict(existing)

        if due_date is None:
            due_date = catalog_entry.resolve_due_date(today) or today + timedelta(
                days=settings.default_due_days
            )
        final = principal - discount

        entry = StudentFeeLedgerEntry(
            entry_number=await DocumentNumberGenerator(self.db).generate(
                DocumentPrefix.FEE_ENTRY, today.year
            ),
            student_id=student.id,
            fee_catalog_entry_id=catalog_entry.id,
            academic_year_id=academic_year_id,
            principal_amount=principal,
            discount_amount=discount,
            final_amount=final,
            discount_rule_id=discount_rule_id,
            due_date=due_date,
            status=derive_status(final, ZERO, due_date, today).value,
            version=0,
            created_by_id=created_by_id,
        )
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)

        await self.audit.log(
            action=AuditAction.ASSIGN_FEE,
            entity_type="StudentFeeLedgerEntry",
            entity_id=entry.id,
            user_id=created_by_id,
            entity_identifier=entry.entry_number,
            new_values={
                "student_id": entry.student_id,
                "fee_catalog_entry_id": entry.fee_catalog_entry_id,
                "academic_year_id": entry.academic_year_id,
                "principal_amount": str(principal),
                "discount_amount": str(discount),
                "final_amount": str(final),
                "discount_rule_id": discount_rule_id,
                "due_date": str(due_date),
                "status": entry.status,
            },
        )
        logger.info(
            "Assigned fee %s to student %s as %s (final %s)",
            catalog_entry.id,
            student.id,
            entry.entry_number,
            final,
        )
        return self._view(entry, ZERO)

    # --- Payments ---

    async def record_payment(
        self, entry_id: int, data: PaymentCreate, recorded_by_id: int
    ) -> PaymentResult:
        """
        Record a payment against a ledger entry.

        A payment whose external_reference was already recorded against this
        entry is not applied again: the original payment is returned with
        already_applied=True.
        """
        amount = round_money(data.amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", field="amount")

        try:
            async with atomic(self.db):
                entry = await self._lock_entry(entry_id)

                if data.external_reference:
                    existing = await self._find_payment_by_reference(data.external_reference)
                    if existing is not None:
                        return await self._replay(entry, existing, amount)

                if not accepts_payments(entry.status):
                    raise ValidationError(
                        f"Ledger entry {entry.entry_number} is {entry.status} and accepts no payments",
                        field="ledger_entry_id",
                        details={"status": entry.status},
                    )

                final = money_from_db(entry.final_amount)
                paid_total = await self._sum_payments(entry.id)
                new_paid = paid_total + amount
                if new_paid > final:
                    excess = new_paid - final
                    logger.warning(
                        "Rejected payment of %s on %s: exceeds balance %s by %s",
                        amount,
                        entry.entry_number,
                        final - paid_total,
                        excess,
                    )
                    raise ValidationError(
                        f"Payment exceeds outstanding balance by {excess}",
                        field="amount",
                        details={
                            "amount": str(amount),
                            "balance": str(final - paid_total),
                            "excess": str(excess),
                        },
                    )

                today = self.today()
                payment = FeePayment(
                    ledger_entry_id=entry.id,
                    receipt_number=await DocumentNumberGenerator(self.db).generate(
                        DocumentPrefix.RECEIPT, today.year
                    ),
                    external_reference=data.external_reference,
                    amount=amount,
                    payment_method=data.payment_method.value,
                    payment_date=data.payment_date or today,
                    bank_name=data.bank_name,
                    cheque_number=data.cheque_number,
                    cheque_date=data.cheque_date,
                    remarks=data.remarks,
                    recorded_by_id=recorded_by_id,
                )
                self.db.add(payment)
                await self.db.flush()
                await self.db.refresh(payment)

                old_status = entry.status
                new_status = derive_status(final, new_paid, entry.due_date, today)
                await self._write_entry(entry, status=new_status.value)

                await self.audit.log(
                    action=AuditAction.RECORD_PAYMENT,
                    entity_type="StudentFeeLedgerEntry",
                    entity_id=entry.id,
                    user_id=recorded_by_id,
                    entity_identifier=payment.receipt_number,
                    old_values={"status": old_status, "paid_total": str(paid_total)},
                    new_values={
                        "status": new_status.value,
                        "paid_total": str(new_paid),
                        "amount": str(amount),
                        "payment_method": payment.payment_method,
                        "external_reference": payment.external_reference,
                    },
                )
                logger.info(
                    "Recorded payment %s of %s on %s: balance %s, status %s",
                    payment.receipt_number,
                    amount,
                    entry.entry_number,
                    final - new_paid,
                    new_status.value,
                )
                result = PaymentResult(
                    payment=PaymentResponse.model_validate(payment),
                    paid_total=new_paid,
                    balance=final - new_paid,
                    status=new_status,
                )
        except IntegrityError:
            # A concurrent call committed the same external reference first
            if not data.external_reference:
                raise
            async with atomic(self.db):
                entry = await self._lock_entry(entry_id)
                existing = await self._find_payment_by_reference(data.external_reference)
                if existing is None:
                    raise
                return await self._replay(entry, existing, amount)
        return result

    async def _replay(
        self, entry: StudentFeeLedgerEntry, payment: FeePayment, amount: Decimal
    ) -> PaymentResult:
        if payment.ledger_entry_id != entry.id or round_money(payment.amount) != amount:
            logger.warning(
                "External reference %s reused: recorded on entry %s for %s, retried on entry %s for %s",
                payment.external_reference,
                payment.ledger_entry_id,
                payment.amount,
                entry.id,
                amount,
            )
            raise ConflictError(
                f"External reference {payment.external_reference} was already used "
                f"for payment {payment.receipt_number}",
                details={
                    "external_reference": payment.external_reference,
                    "receipt_number": payment.receipt_number,
                    "ledger_entry_id": payment.ledger_entry_id,
                },
            )

        # Figures as of the original call: payments are append-only with increasing ids
        final = money_from_db(entry.final_amount)
        paid_total = await self._sum_payments(entry.id, up_to_payment_id=payment.id)
        logger.info(
            "Payment %s already applied to %s (reference %s)",
            payment.receipt_number,
            entry.entry_number,
            payment.external_reference,
        )
        return PaymentResult(
            payment=PaymentResponse.model_validate(payment),
            paid_total=paid_total,
            balance=final - paid_total,
            status=derive_status(final, paid_total, entry.due_date, payment.payment_date),
            already_applied=True,
        )

    # --- Amendments ---

    async def amend_discount(
        self, entry_id: int, data: DiscountAmend, amended_by_id: int
    ) -> LedgerEntryView:
        """Change the discount of an entry. The new final amount may not drop below what is paid."""
        async with atomic(self.db):
            entry = await self._lock_entry(entry_id)
            if entry.is_waived:
                raise ValidationError(
                    f"Ledger entry {entry.entry_number} is waived", field="ledger_entry_id"
                )

            principal = money_from_db(entry.principal_amount)
            new_discount = round_money(data.discount_amount)
            if new_discount < 0 or new_discount > principal:
                raise ValidationError(
                    f"Discount {new_discount} must be between 0 and principal amount {principal}",
                    field="discount_amount",
                    details={"discount_amount": str(new_discount), "principal_amount": str(principal)},
                )

            paid_total = await self._sum_payments(entry.id)
            new_final = principal - new_discount
            if new_final < paid_total:
                raise ValidationError(
                    f"Discount would leave the entry overpaid by {paid_total - new_final}",
                    field="discount_amount",
                    details={
                        "final_amount": str(new_final),
                        "paid_total": str(paid_total),
                        "excess": str(paid_total - new_final),
                    },
                )

            old_values = {
                "discount_amount": str(money_from_db(entry.discount_amount)),
                "final_amount": str(money_from_db(entry.final_amount)),
                "status": entry.status,
            }
            new_status = derive_status(new_final, paid_total, entry.due_date, self.today())
            await self._write_entry(
                entry,
                discount_amount=new_discount,
                final_amount=new_final,
                discount_rule_id=None,
                status=new_status.value,
            )

            await self.audit.log(
                action=AuditAction.AMEND_DISCOUNT,
                entity_type="StudentFeeLedgerEntry",
                entity_id=entry.id,
                user_id=amended_by_id,
                entity_identifier=entry.entry_number,
                old_values=old_values,
                new_values={
                    "discount_amount": str(new_discount),
                    "final_amount": str(new_final),
                    "status": new_status.value,
                },
                comment=data.reason,
            )
            logger.info(
                "Amended discount on %s: %s -> %s",
                entry.entry_number,
                old_values["discount_amount"],
                new_discount,
            )
            view = self._view(entry, paid_total)
        return view

    async def waive_entry(self, entry_id: int, reason: str, waived_by_id: int) -> LedgerEntryView:
        """Close an unpaid or partly paid entry without further payment."""
        async with atomic(self.db):
            entry = await self._lock_entry(entry_id)
            if entry.is_paid or entry.is_waived:
                raise ValidationError(
                    f"Ledger entry {entry.entry_number} is already {entry.status}",
                    field="ledger_entry_id",
                    details={"status": entry.status},
                )
            old_status = entry.status
            paid_total = await self._sum_payments(entry.id)
            await self._write_entry(entry, status=LedgerStatus.WAIVED.value)

            await self.audit.log(
                action=AuditAction.WAIVE_FEE,
                entity_type="StudentFeeLedgerEntry",
                entity_id=entry.id,
                user_id=waived_by_id,
                entity_identifier=entry.entry_number,
                old_values={"status": old_status},
                new_values={"status": LedgerStatus.WAIVED.value, "paid_total": str(paid_total)},
                comment=reason,
            )
            logger.info("Waived %s (was %s)", entry.entry_number, old_status)
            view = self._view(entry, paid_total)
        return view

    async def delete_entry(self, entry_id: int, deleted_by_id: int) -> None:
        """Remove an assignment made in error. Entries with payments cannot be deleted."""
        async with atomic(self.db):
            entry = await self._lock_entry(entry_id)
            payment_count = await self.db.scalar(
                select(func.count(FeePayment.id)).where(FeePayment.ledger_entry_id == entry.id)
            )
            if payment_count:
                raise ValidationError(
                    f"Ledger entry {entry.entry_number} has {payment_count} payment(s) and cannot be deleted",
                    field="ledger_entry_id",
                )

            await self.audit.log(
                action=AuditAction.DELETE_FEE,
                entity_type="StudentFeeLedgerEntry",
                entity_id=entry.id,
                user_id=deleted_by_id,
                entity_identifier=entry.entry_number,
                old_values={
                    "student_id": entry.student_id,
                    "fee_catalog_entry_id": entry.fee_catalog_entry_id,
                    "final_amount": str(money_from_db(entry.final_amount)),
                },
            )
            await self.db.delete(entry)
            logger.info("Deleted ledger entry %s", entry.entry_number)

    async def refresh_overdue(
        self, today: date | None = None, actor_id: int | None = None
    ) -> OverdueRefreshResult:
        """Persist `overdue` on pending entries past their due date."""
        as_of = today or self.today()
        result = await self.db.execute(
            select(StudentFeeLedgerEntry.id)
            .where(
                StudentFeeLedgerEntry.status == LedgerStatus.PENDING.value,
                StudentFeeLedgerEntry.due_date < as_of,
            )
            .order_by(StudentFeeLedgerEntry.id)
        )
        candidate_ids = list(result.scalars().all())

        updated = 0
        for entry_id in candidate_ids:
            try:
                async with atomic(self.db):
                    entry = await self._lock_entry(entry_id)
                    paid_total = await self._sum_payments(entry.id)
                    new_status = derive_status(
                        money_from_db(entry.final_amount),
                        paid_total,
                        entry.due_date,
                        as_of,
                        current=entry.status,
                    )
                    if entry.status != LedgerStatus.PENDING.value or new_status != LedgerStatus.OVERDUE:
                        continue
                    await self._write_entry(entry, status=new_status.value)
                    await self.audit.log(
                        action=AuditAction.MARK_OVERDUE,
                        entity_type="StudentFeeLedgerEntry",
                        entity_id=entry.id,
                        user_id=actor_id,
                        entity_identifier=entry.entry_number,
                        old_values={"status": LedgerStatus.PENDING.value},
                        new_values={"status": new_status.value},
                    )
                updated += 1
            except (ConflictError, NotFoundError) as exc:
                logger.warning("Skipped overdue refresh of ledger entry %s: %s", entry_id, exc.message)

        if not candidate_ids:
            await self.db.commit()
        logger.info("Overdue refresh as of %s: %d entries marked overdue", as_of, updated)
        return OverdueRefreshResult(updated=updated, as_of=as_of)

    # --- Reads ---

    async def get_entry(self, entry_id: int) -> LedgerEntryView:
        entry = await self._get_entry_row(entry_id)
        return self._view(entry, await self._sum_payments(entry.id))

    async def list_entries(self, filters: LedgerFilters) -> tuple[list[LedgerEntryView], int]:
        """List entries. The status filter matches the status as of today."""
        query = select(StudentFeeLedgerEntry)

        if filters.student_id is not None:
            query = query.where(StudentFeeLedgerEntry.student_id == filters.student_id)
        if filters.academic_year_id is not None:
            query = query.where(StudentFeeLedgerEntry.academic_year_id == filters.academic_year_id)
        if filters.fee_catalog_entry_id is not None:
            query = query.where(
                StudentFeeLedgerEntry.fee_catalog_entry_id == filters.fee_catalog_entry_id
            )
        if filters.status is not None:
            query = query.where(self._status_clause(filters.status, self.today()))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(StudentFeeLedgerEntry.id.desc())
        query = query.offset((filters.page - 1) * filters.limit).limit(filters.limit)
        entries = list((await self.db.execute(query)).scalars().all())

        totals = await self._paid_totals([e.id for e in entries])
        return [self._view(e, totals.get(e.id, ZERO)) for e in entries], total

    async def list_payments(self, entry_id: int) -> list[FeePayment]:
        """Payments of one entry in the order they were recorded."""
        await self._get_entry_row(entry_id)
        result = await self.db.execute(
            select(FeePayment)
            .where(FeePayment.ledger_entry_id == entry_id)
            .order_by(FeePayment.id)
        )
        return list(result.scalars().all())

    async def get_student_fees(
        self,
        student_id: int,
        academic_year_id: int | None = None,
        status: LedgerStatus | None = None,
    ) -> StudentFeesResponse:
        """All fees of a student with totals and per-status counts."""
        await self.students.get_student(student_id)

        query = select(StudentFeeLedgerEntry).where(StudentFeeLedgerEntry.student_id == student_id)
        if academic_year_id is not None:
            query = query.where(StudentFeeLedgerEntry.academic_year_id == academic_year_id)
        if status is not None:
            query = query.where(self._status_clause(status, self.today()))
        query = query.order_by(StudentFeeLedgerEntry.due_date, StudentFeeLedgerEntry.id)
        entries = list((await self.db.execute(query)).scalars().all())

        totals = await self._paid_totals([e.id for e in entries])
        views = [self._view(e, totals.get(e.id, ZERO)) for e in entries]

        by_status = {s.value: 0 for s in LedgerStatus}
        for view in views:
            by_status[view.status.value] += 1

        summary = StudentFeesSummary(
            total_fees=len(views),
            total_amount=sum((v.final_amount for v in views), ZERO),
            total_paid=sum((v.paid_total for v in views), ZERO),
            total_balance=sum((v.balance for v in views), ZERO),
            by_status=by_status,
        )
        return StudentFeesResponse(
            student_id=student_id,
            academic_year_id=academic_year_id,
            entries=views,
            summary=summary,
        )

    async def get_payment_history(
        self,
        student_id: int,
        academic_year_id: int | None = None,
        limit: int = 50,
    ) -> PaymentHistoryResponse:
        """A student's payments across all entries, newest first, with a summary."""
        await self.students.get_student(student_id)

        conditions = [StudentFeeLedgerEntry.student_id == student_id]
        if academic_year_id is not None:
            conditions.append(StudentFeeLedgerEntry.academic_year_id == academic_year_id)

        result = await self.db.execute(
            select(FeePayment)
            .join(StudentFeeLedgerEntry, FeePayment.ledger_entry_id == StudentFeeLedgerEntry.id)
            .where(*conditions)
            .order_by(FeePayment.payment_date.desc(), FeePayment.id.desc())
            .limit(limit)
        )
        payments = list(result.scalars().all())

        summary_row = (
            await self.db.execute(
                select(
                    func.count(FeePayment.id),
                    func.sum(FeePayment.amount),
                    func.min(FeePayment.payment_date),
                    func.max(FeePayment.payment_date),
                )
                .join(StudentFeeLedgerEntry, FeePayment.ledger_entry_id == StudentFeeLedgerEntry.id)
                .where(*conditions)
            )
        ).one()

        return PaymentHistoryResponse(
            student_id=student_id,
            payments=[PaymentResponse.model_validate(p) for p in payments],
            summary=PaymentHistorySummary(
                total_payments=summary_row[0] or 0,
                total_amount=money_from_db(summary_row[1]),
                first_payment_date=summary_row[2],
                last_payment_date=summary_row[3],
            ),
        )

    # --- Helpers ---

    async def _get_assignable_catalog_entry(self, catalog_entry_id: int) -> FeeCatalogEntry:
        catalog_entry = await self.catalog.get_catalog_entry(catalog_entry_id)
        if not catalog_entry.is_active:
            raise ValidationError(
                f"Fee '{catalog_entry.name}' is not active", field="fee_catalog_entry_id"
            )
        return catalog_entry

    async def _resolve_academic_year(
        self, requested_id: int | None, catalog_entry: FeeCatalogEntry
    ) -> int:
        if requested_id is not None:
            year = await self.years.get_year(requested_id)
            if catalog_entry.academic_year_id is not None and catalog_entry.academic_year_id != year.id:
                raise ValidationError(
                    f"Fee '{catalog_entry.name}' belongs to a different academic year",
                    field="academic_year_id",
                )
            return year.id
        if catalog_entry.academic_year_id is not None:
            return catalog_entry.academic_year_id
        current = await self.years.get_current_year()
        if current is None:
            raise ValidationError(
                "No academic year given and no current academic year is set",
                field="academic_year_id",
            )
        return current.id

    async def _find_assignment(
        self, student_id: int, catalog_entry_id: int, academic_year_id: int
    ) -> StudentFeeLedgerEntry | None:
        result = await self.db.execute(
            select(StudentFeeLedgerEntry).where(
                StudentFeeLedgerEntry.student_id == student_id,
                StudentFeeLedgerEntry.fee_catalog_entry_id == catalog_entry_id,
                StudentFeeLedgerEntry.academic_year_id == academic_year_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _assignment_conflict(existing: StudentFeeLedgerEntry) -> ConflictError:
        return ConflictError(
            f"Fee is already assigned to student {existing.student_id} "
            f"for this academic year ({existing.entry_number})",
            details={
                "existing_entry_id": existing.id,
                "student_id": existing.student_id,
                "fee_catalog_entry_id": existing.fee_catalog_entry_id,
                "academic_year_id": existing.academic_year_id,
            },
        )

    async def _get_entry_row(self, entry_id: int) -> StudentFeeLedgerEntry:
        result = await self.db.execute(
            select(StudentFeeLedgerEntry)
            .where(StudentFeeLedgerEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("Ledger entry", entry_id)
        return entry

    async def _lock_entry(self, entry_id: int) -> StudentFeeLedgerEntry:
        """Fresh read of the entry under a row lock, bypassing the identity map."""
        result = await self.db.execute(
            select(StudentFeeLedgerEntry)
            .where(StudentFeeLedgerEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("Ledger entry", entry_id)
        return entry

    async def _find_payment_by_reference(self, reference: str) -> FeePayment | None:
        result = await self.db.execute(
            select(FeePayment).where(FeePayment.external_reference == reference)
        )
        return result.scalar_one_or_none()

    async def _sum_payments(self, entry_id: int, up_to_payment_id: int | None = None) -> Decimal:
        stmt = select(func.sum(FeePayment.amount)).where(FeePayment.ledger_entry_id == entry_id)
        if up_to_payment_id is not None:
            stmt = stmt.where(FeePayment.id <= up_to_payment_id)
        return money_from_db(await self.db.scalar(stmt))

    async def _paid_totals(self, entry_ids: list[int]) -> dict[int, Decimal]:
        if not entry_ids:
            return {}
        result = await self.db.execute(
            select(FeePayment.ledger_entry_id, func.sum(FeePayment.amount))
            .where(FeePayment.ledger_entry_id.in_(entry_ids))
            .group_by(FeePayment.ledger_entry_id)
        )
        return {entry_id: money_from_db(total) for entry_id, total in result.all()}

    async def _write_entry(self, entry: StudentFeeLedgerEntry, **values: Any) -> None:
        """
        Write `values` to the entry if nobody else wrote it since it was read.

        Raises ConflictError when the stored version moved on.
        """
        expected_version = entry.version
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(StudentFeeLedgerEntry)
            .where(
                StudentFeeLedgerEntry.id == entry.id,
                StudentFeeLedgerEntry.version == expected_version,
            )
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Concurrent modification of ledger entry %s (expected version %s)",
                entry.id,
                expected_version,
            )
            raise ConflictError(
                "Ledger entry was modified by another request. Retry the operation.",
                details={"ledger_entry_id": entry.id, "expected_version": expected_version},
            )

        for key, value in values.items():
            set_committed_value(entry, key, value)
        set_committed_value(entry, "version", expected_version + 1)

    @staticmethod
    def _status_clause(status: LedgerStatus, today: date):
        """SQL condition for entries whose status as of `today` is `status`."""
        column = StudentFeeLedgerEntry.status
        if status == LedgerStatus.OVERDUE:
            return or_(
                column == LedgerStatus.OVERDUE.value,
                and_(column == LedgerStatus.PENDING.value, StudentFeeLedgerEntry.due_date < today),
            )
        if status == LedgerStatus.PENDING:
            return and_(column == LedgerStatus.PENDING.value, StudentFeeLedgerEntry.due_date >= today)
        return column == status.value

    def _view(self, entry: StudentFeeLedgerEntry, paid_total: Decimal) -> LedgerEntryView:
        final = money_from_db(entry.final_amount)
        return LedgerEntryView(
            id=entry.id,
            entry_number=entry.entry_number,
            student_id=entry.student_id,
            fee_catalog_entry_id=entry.fee_catalog_entry_id,
            academic_year_id=entry.academic_year_id,
            principal_amount=money_from_db(entry.principal_amount),
            discount_amount=money_from_db(entry.discount_amount),
            final_amount=final,
            discount_rule_id=entry.discount_rule_id,
            due_date=entry.due_date,
            status=effective_status(entry.status, final, paid_total, entry.due_date, self.today()),
            paid_total=paid_total,
            balance=final - paid_total,
            version=entry.version,
            created_by_id=entry.created_by_id,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )
