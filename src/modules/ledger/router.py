"""API endpoints for the student fee ledger."""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import CurrentUser, FinanceUser
from src.core.database.session import get_db
from src.modules.ledger.models import LedgerStatus
from src.modules.ledger.schemas import (
    BulkAssignRequest,
    BulkAssignResult,
    DiscountAmend,
    LedgerEntryCreate,
    LedgerEntryView,
    LedgerFilters,
    OverdueRefreshResult,
    PaymentCreate,
    PaymentHistoryResponse,
    PaymentResponse,
    PaymentResult,
    StudentFeesResponse,
    WaiveRequest,
)
from src.modules.ledger.service import LedgerService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/ledger", tags=["Fee Ledger"])


# --- Entries ---


@router.post(
    "/entries",
    response_model=ApiResponse[LedgerEntryView],
    status_code=status.HTTP_201_CREATED,
)
async def create_entry(
    data: LedgerEntryCreate,
    current_user: FinanceUser,
    db: AsyncSession = Depends(get_db),
):
    """Assign a catalog fee to a student."""
    entry = await LedgerService(db).create_entry(data, current_user.id)
    return ApiResponse(data=entry, message="Fee assigned successfully")


@router.post("/entries/bulk", response_model=ApiResponse[BulkAssignResult])
async def assign_to_students(
    data: BulkAssignRequest,
    current_user: FinanceUser,
    db: AsyncSession = Depends(get_db),
):
    """Assign a catalog fee to several students; failures are reported per student."""
    result = await LedgerService(db).assign_to_students(data, current_user.id)
    return ApiResponse(
        data=result,
        message=f"Assigned to {len(result.created)} student(s), skipped {len(result.skipped)}",
    )


@router.get("/entries", response_model=ApiResponse[PaginatedResponse[LedgerEntryView]])
async def list_entries(
    current_user: CurrentUser,
    student_id: int | None = Query(None),
    academic_year_id: int | None = Query(None),
    fee_catalog_entry_id: int | None = Query(None),
    entry_status: LedgerStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    filters = LedgerFilters(
        student_id=student_id,
        academic_year_id=academic_year_id,
        fee_catalog_entry_id=fee_catalog_entry_id,
        status=entry_status,
        page=page,
        limit=limit,
    )
    entries, total = await LedgerService(db).list_entries(filters)
    return ApiResponse(
        data=PaginatedResponse.create(items=entries, total=total, page=page, limit=limit)
    )


@router.get("/entries/{entry_id}", response_model=ApiResponse[LedgerEntryView])
async def get_entry(
    entry_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    entry = await LedgerService(db).get_entry(entry_id)
    return ApiResponse(data=entry)


@router.delete("/entries/{entry_id}", response_model=ApiResponse[None])
async def delete_entry(
    entry_id: int,
    current_user: FinanceUser,
    db: AsyncSession = Depends(get_db),
):
    """Delete an assignment that has no payments."""
    await LedgerService(db).delete_entry(entry_id, current_user.id)
    return ApiResponse(data=None, message="Ledger entry deleted")


@router.post("/entries/{entry_id}/discount", response_model=ApiResponse[LedgerEntryView])
async def amend_discount(
    entry_id: int,
    data: DiscountAmend,
    current_user: FinanceUser,
    db: AsyncSession = Depends(get_db),
):
    entry = await LedgerService(db).amend_discount(entry_id, data, current_user.id)
    return ApiResponse(data=entry, message="Discount amended")


@router.post("/entries/{entry_id}/waive", response_model=ApiResponse[LedgerEntryView])
async def waive_entry(
    entry_id: int,
    data: WaiveRequest,
    current_user: FinanceUser,
    db: AsyncSession = Depends(get_db),
):
    entry = await LedgerService(db).waive_entry(entry_id, data.reason, current_user.id)
    return ApiResponse(data=entry, message="Fee waived")


# --- Payments ---


@router.post(
    "/entries/{entry_id}/payments",
    response_model=ApiResponse[PaymentResult],
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    entry_id: int,
    data: PaymentCreate,
    response: Response,
    current_user: FinanceUser,
    db: AsyncSession = Depends(get_db),
):
    """
    Record a payment. Retrying with the same external_reference returns the
    original payment with 200 instead of recording it twice.
    """
    result = await LedgerService(db).record_payment(entry_id, data, current_user.id)
    if result.already_applied:
        response.status_code = status.HTTP_200_OK
        return ApiResponse(data=result, message="Payment was already recorded")
    return ApiResponse(data=result, message="Payment recorded successfully")


@router.get("/entries/{entry_id}/payments", response_model=ApiResponse[list[PaymentResponse]])
async def list_payments(
    entry_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    payments = await LedgerService(db).list_payments(entry_id)
    return ApiResponse(data=[PaymentResponse.model_validate(p) for p in payments])


# --- Student views ---


@router.get("/students/{student_id}/fees", response_model=ApiResponse[StudentFeesResponse])
async def get_student_fees(
    student_id: int,
    current_user: CurrentUser,
    academic_year_id: int | None = Query(None),
    entry_status: LedgerStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    fees = await LedgerService(db).get_student_fees(student_id, academic_year_id, entry_status)
    return ApiResponse(data=fees)


@router.get(
    "/students/{student_id}/payments", response_model=ApiResponse[PaymentHistoryResponse]
)
async def get_payment_history(
    student_id: int,
    current_user: CurrentUser,
    academic_year_id: int | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    history = await LedgerService(db).get_payment_history(student_id, academic_year_id, limit)
    return ApiResponse(data=history)


# --- Maintenance ---


@router.post("/overdue/refresh", response_model=ApiResponse[OverdueRefreshResult])
async def refresh_overdue(
    current_user: FinanceUser,
    as_of: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Persist the overdue status on pending entries past their due date."""
    result = await LedgerService(db).refresh_overdue(today=as_of, actor_id=current_user.id)
    return ApiResponse(data=result, message=f"{result.updated} entries marked overdue")
