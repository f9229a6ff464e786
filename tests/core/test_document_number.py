import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents import DocumentNumberGenerator, DocumentPrefix, DocumentSequence
from src.core.exceptions import ConflictError


class TestDocumentNumberGenerator:
    """Tests for document number generator."""

    async def test_generate_first_number(self, db_session: AsyncSession):
        number = await DocumentNumberGenerator(db_session).generate(
            DocumentPrefix.FEE_ENTRY, year=2026
        )
        assert number == "FEE-2026-000001"

    async def test_generate_sequential_numbers(self, db_session: AsyncSession):
        generator = DocumentNumberGenerator(db_session)
        numbers = [await generator.generate(DocumentPrefix.RECEIPT, year=2026) for _ in range(3)]

        assert numbers == ["RCP-2026-000001", "RCP-2026-000002", "RCP-2026-000003"]

    async def test_different_prefixes(self, db_session: AsyncSession):
        """Different prefixes have independent sequences."""
        generator = DocumentNumberGenerator(db_session)
        fee = await generator.generate(DocumentPrefix.FEE_ENTRY, year=2026)
        receipt = await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        fee2 = await generator.generate(DocumentPrefix.FEE_ENTRY, year=2026)

        assert fee == "FEE-2026-000001"
        assert receipt == "RCP-2026-000001"
        assert fee2 == "FEE-2026-000002"

    async def test_different_years(self, db_session: AsyncSession):
        generator = DocumentNumberGenerator(db_session)
        num_2026 = await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        num_2027 = await generator.generate(DocumentPrefix.RECEIPT, year=2027)
        num_2026_2 = await generator.generate(DocumentPrefix.RECEIPT, year=2026)

        assert num_2026 == "RCP-2026-000001"
        assert num_2027 == "RCP-2027-000001"
        assert num_2026_2 == "RCP-2026-000002"

    async def test_rolled_back_number_is_reissued(self, db_session: AsyncSession):
        generator = DocumentNumberGenerator(db_session)
        await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        await db_session.commit()

        await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        await db_session.rollback()

        number = await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        assert number == "RCP-2026-000002"

    async def test_concurrently_started_sequence_is_a_conflict(
        self, db_session: AsyncSession, monkeypatch
    ):
        """Both transactions saw no row and both insert it: the second one gets a conflict."""
        db_session.add(DocumentSequence(prefix=DocumentPrefix.RECEIPT, year=2026, last_number=3))
        await db_session.commit()

        generator = DocumentNumberGenerator(db_session)

        async def row_not_yet_visible(prefix: str, year: int):
            return None

        monkeypatch.setattr(generator, "_lock_sequence", row_not_yet_visible)

        with pytest.raises(ConflictError) as exc_info:
            await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["prefix"] == "RCP"

        await db_session.rollback()
        monkeypatch.undo()

        sequences = (await db_session.execute(select(DocumentSequence))).scalars().all()
        assert [(s.prefix, s.last_number) for s in sequences] == [("RCP", 3)]
        number = await generator.generate(DocumentPrefix.RECEIPT, year=2026)
        assert number == "RCP-2026-000004"
