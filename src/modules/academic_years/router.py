from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import AdminUser, CurrentUser
from src.core.database import get_db
from src.modules.academic_years.schemas import AcademicYearCreate, AcademicYearResponse
from src.modules.academic_years.service import AcademicYearService
from src.shared.schemas import ApiResponse

router = APIRouter(prefix="/academic-years", tags=["Academic Years"])


@router.get("", response_model=ApiResponse[list[AcademicYearResponse]])
async def list_academic_years(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    years = await AcademicYearService(db).list_years()
    return ApiResponse(data=[AcademicYearResponse.model_validate(y) for y in years])


@router.get("/current", response_model=ApiResponse[AcademicYearResponse | None])
async def get_current_academic_year(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    year = await AcademicYearService(db).get_current_year()
    return ApiResponse(data=AcademicYearResponse.model_validate(year) if year else None)


@router.post(
    "",
    response_model=ApiResponse[AcademicYearResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_academic_year(
    data: AcademicYearCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    year = await AcademicYearService(db).create_year(data, current_user.id)
    return ApiResponse(
        data=AcademicYearResponse.model_validate(year),
        message="Academic year created",
    )
