import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.models import DocumentSequence
from src.core.exceptions import ConflictError

logger = logging.getLogger(__name__)


class DocumentPrefix:
    """Prefixes of the documents the ledger issues."""

    FEE_ENTRY = "FEE"
    RECEIPT = "RCP"


class DocumentNumberGenerator:
    """
    Generates sequential document numbers in format: PREFIX-YYYY-NNNNNN

    Examples:
        FEE-2026-000001
        RCP-2026-000042
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate(self, prefix: str, year: int | None = None) -> str:
        """
        Generate next document number for given prefix and year.

        The sequence row is read with SELECT FOR UPDATE, so two transactions
        never receive the same number. The counter is part of the caller's
        transaction: a rolled-back caller gives its number back.

        Raises:
            ConflictError: another transaction created the first row for this
                prefix and year at the same time
        """
        if year is None:
            year = datetime.now().year

        sequence = await self._lock_sequence(prefix, year)
        if sequence is None:
            self.session.add(DocumentSequence(prefix=prefix, year=year, last_number=0))
            try:
                await self.session.flush()
            except IntegrityError:
                logger.info("Sequence %s-%s was started by a concurrent transaction", prefix, year)
                raise ConflictError(
                    f"Numbering for {prefix}-{year} was started by another request. "
                    "Retry the operation.",
                    details={"prefix": prefix, "year": year},
                )
            sequence = await self._lock_sequence(prefix, year)

        number = sequence.issue()
        await self.session.flush()
        return number

    async def _lock_sequence(self, prefix: str, year: int) -> DocumentSequence | None:
        result = await self.session.execute(
            select(DocumentSequence)
            .where(DocumentSequence.prefix == prefix, DocumentSequence.year == year)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
