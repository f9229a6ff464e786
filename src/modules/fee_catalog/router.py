"""API endpoints for the fee catalog."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import AdminUser, CurrentUser
from src.core.database.session import get_db
from src.modules.fee_catalog.models import FeeFrequency
from src.modules.fee_catalog.schemas import (
    FeeCatalogCreate,
    FeeCatalogFilters,
    FeeCatalogListItem,
    FeeCatalogResponse,
    FeeCatalogSortField,
    FeeCatalogUpdate,
)
from src.modules.fee_catalog.service import FeeCatalogService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/fee-catalog", tags=["Fee Catalog"])


@router.post(
    "",
    response_model=ApiResponse[FeeCatalogResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_catalog_entry(
    data: FeeCatalogCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    entry = await FeeCatalogService(db).create_entry(data, current_user.id)
    return ApiResponse(
        data=FeeCatalogResponse.model_validate(entry),
        message="Fee catalog entry created successfully",
    )


@router.get("", response_model=ApiResponse[PaginatedResponse[FeeCatalogListItem]])
async def list_catalog_entries(
    current_user: CurrentUser,
    search: str | None = Query(None),
    grade_id: int | None = Query(None),
    academic_year_id: int | None = Query(None),
    frequency: FeeFrequency | None = Query(None),
    is_mandatory: bool | None = Query(None),
    is_active: bool | None = Query(None),
    sort_by: FeeCatalogSortField = Query(FeeCatalogSortField.NAME),
    sort_desc: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    filters = FeeCatalogFilters(
        search=search,
        grade_id=grade_id,
        academic_year_id=academic_year_id,
        frequency=frequency,
        is_mandatory=is_mandatory,
        is_active=is_active,
        sort_by=sort_by,
        sort_desc=sort_desc,
        page=page,
        limit=limit,
    )
    rows, total = await FeeCatalogService(db).list_entries(filters)
    items = [
        FeeCatalogListItem.model_validate(entry).model_copy(update={"assigned_students": count})
        for entry, count in rows
    ]
    return ApiResponse(
        data=PaginatedResponse.create(items=items, total=total, page=page, limit=limit)
    )


@router.get("/{entry_id}", response_model=ApiResponse[FeeCatalogResponse])
async def get_catalog_entry(
    entry_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    entry = await FeeCatalogService(db).get_entry(entry_id)
    return ApiResponse(data=FeeCatalogResponse.model_validate(entry))


@router.patch("/{entry_id}", response_model=ApiResponse[FeeCatalogResponse])
async def update_catalog_entry(
    entry_id: int,
    data: FeeCatalogUpdate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    entry = await FeeCatalogService(db).update_entry(entry_id, data, current_user.id)
    return ApiResponse(
        data=FeeCatalogResponse.model_validate(entry),
        message="Fee catalog entry updated successfully",
    )
