from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog


class AuditAction(StrEnum):
    """Standard audit actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"

    # Ledger actions
    ASSIGN_FEE = "ASSIGN_FEE"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    AMEND_DISCOUNT = "AMEND_DISCOUNT"
    WAIVE_FEE = "WAIVE_FEE"
    DELETE_FEE = "DELETE_FEE"
    MARK_OVERDUE = "MARK_OVERDUE"


class AuditService:
    """Service for creating and reading audit logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str | AuditAction,
        entity_type: str,
        entity_id: int,
        user_id: int | None = None,
        entity_identifier: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
        ip_address: str | None = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: Action performed (e.g., ASSIGN_FEE, RECORD_PAYMENT)
            entity_type: Type of entity (e.g., StudentFeeLedgerEntry, FeePayment)
            entity_id: ID of the entity
            user_id: ID of the user who performed the action
            entity_identifier: Human-readable identifier (e.g., document number)
            old_values: State before change
            new_values: State after change
            comment: Additional comment (e.g., amendment reason)
            ip_address: Client IP address

        The entry is flushed, not committed: it belongs to the caller's
        transaction and disappears with it on rollback.
        """
        audit_log = AuditLog(
            user_id=user_id,
            action=str(action),
            entity_type=entity_type,
            entity_id=entity_id,
            entity_identifier=entity_identifier,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
            ip_address=ip_address,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log

    async def list_for_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]:
        """History of one entity, oldest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at, AuditLog.id)
        )
        return list(result.scalars().all())
