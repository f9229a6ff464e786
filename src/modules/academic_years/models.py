from datetime import date

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class AcademicYear(BaseModel):
    """
    Academic year (e.g. "2026-2027").

    Fee catalog entries and ledger entries are scoped to a year. At most one
    year is current; it is the default scope for new assignments.
    """

    __tablename__ = "academic_years"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    created_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
