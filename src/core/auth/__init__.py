from src.core.auth.models import FINANCE_ROLES, User, UserRole
from src.core.auth.dependencies import CurrentUser, FinanceUser, get_current_user, require_roles

__all__ = ["FINANCE_ROLES", "User", "UserRole", "CurrentUser", "FinanceUser", "get_current_user", "require_roles"]
