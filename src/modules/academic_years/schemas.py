from datetime import date, datetime

from pydantic import Field, model_validator

from src.shared.schemas.base import BaseSchema


class AcademicYearCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=50)
    start_date: date
    end_date: date
    is_current: bool = False

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class AcademicYearResponse(BaseSchema):
    id: int
    name: str
    start_date: date
    end_date: date
    is_current: bool
    created_at: datetime
