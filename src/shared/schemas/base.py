from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Shared config: schemas validate straight from ORM rows."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ApiResponse(BaseSchema, Generic[T]):
    """Envelope of every successful response."""

    success: bool = True
    data: T
    message: str | None = None


class ErrorDetail(BaseSchema):
    field: str | None = None
    message: str


class ErrorResponse(BaseSchema):
    """
    Envelope of every error response. `details` carries machine-readable
    figures (e.g. the excess of a rejected payment).
    """

    success: bool = False
    data: None = None
    message: str
    errors: list[ErrorDetail] = []
    details: dict[str, Any] | None = None


class PaginatedResponse(BaseSchema, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        pages = -(-total // limit) if limit > 0 else 0
        return cls(items=items, total=total, page=page, limit=limit, pages=pages)
