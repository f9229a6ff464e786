import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.auth.jwt import create_access_token, create_refresh_token, decode_token
from src.core.auth.models import User, UserRole
from src.core.auth.password import hash_password, verify_password
from src.core.exceptions import AuthenticationError, DuplicateError

logger = logging.getLogger(__name__)


class AuthService:
    """Staff accounts and token issuance."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: str | None,
        full_name: str,
        role: UserRole,
        created_by_id: int | None = None,
    ) -> User:
        """Create a staff account (flushed, not committed). No password means no sign-in."""
        email = email.strip().lower()
        if await self.get_user_by_email(email):
            raise DuplicateError("User", "email", email)

        user = User(
            email=email,
            password_hash=hash_password(password) if password else None,
            full_name=full_name,
            role=role.value,
            is_active=True,
        )
        self.session.add(user)
        await self.session.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="User",
            entity_id=user.id,
            user_id=created_by_id,
            entity_identifier=user.email,
            new_values={"role": user.role, "full_name": user.full_name},
        )
        return user

    async def authenticate(
        self, email: str, password: str, ip_address: str | None = None
    ) -> tuple[User, str, str]:
        """
        Check credentials and issue a token pair.

        Returns:
            (user, access_token, refresh_token)

        Raises:
            AuthenticationError: unknown email, wrong password or inactive account
        """
        user = await self.get_user_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.warning("Failed sign-in for %s from %s", email, ip_address or "unknown address")
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")

        user.last_login_at = datetime.now(timezone.utc)
        await self.audit.log(
            action=AuditAction.LOGIN,
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            entity_identifier=user.email,
            ip_address=ip_address,
        )
        access_token, refresh_token = self._issue_tokens(user)
        return user, access_token, refresh_token

    async def refresh_tokens(self, refresh_token: str) -> tuple[str, str]:
        """Exchange a refresh token for a new (access, refresh) pair."""
        payload = decode_token(refresh_token, token_type="refresh")

        user = await self.get_user_by_id(int(payload["sub"]))
        if not user:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")
        return self._issue_tokens(user)

    @staticmethod
    def _issue_tokens(user: User) -> tuple[str, str]:
        return create_access_token(user.id, user.role), create_refresh_token(user.id)
