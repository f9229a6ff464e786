from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.jwt import decode_token
from src.core.auth.models import FINANCE_ROLES, User, UserRole
from src.core.auth.service import AuthService
from src.core.database import get_db
from src.core.exceptions import AuthenticationError, AuthorizationError

# Missing credentials are reported by get_current_user (401), not by FastAPI (403)
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: AsyncSession = Depends(get_db),
) -> User:
    """The staff member behind the Bearer token; their id is the actor on ledger writes."""
    if credentials is None:
        raise AuthenticationError("Authorization header required")
    if credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format")

    payload = decode_token(credentials.credentials, token_type="access")

    user = await AuthService(db).get_user_by_id(int(payload["sub"]))
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: the current user must hold one of `roles`."""

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_role(*roles):
            allowed = ", ".join(r.value for r in roles)
            raise AuthorizationError(f"Required role: {allowed}")
        return current_user

    return role_checker


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.ADMIN))]
# Assign fees, record payments, amend discounts, waive
FinanceUser = Annotated[User, Depends(require_roles(*FINANCE_ROLES))]
