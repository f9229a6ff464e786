from datetime import datetime

from pydantic import Field, field_validator

from src.shared.schemas import BaseSchema


class LoginRequest(BaseSchema):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RefreshRequest(BaseSchema):
    refresh_token: str


class TokenResponse(BaseSchema):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseSchema):
    id: int
    email: str
    full_name: str
    role: str
    is_active: bool
    can_manage_ledger: bool
    last_login_at: datetime | None
    created_at: datetime


class LoginResponse(TokenResponse):
    user: UserResponse
