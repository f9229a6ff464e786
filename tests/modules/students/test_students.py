import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError
from src.modules.students.service import StudentService


class TestStudentDirectory:
    """Tests for the student lookups the ledger relies on."""

    async def test_get_student(self, db_session: AsyncSession, ledger_data: dict):
        student = await StudentService(db_session).get_student(ledger_data["student_id"])

        assert student.student_number == "STU-000001"
        assert student.full_name == "Alice Wanjiru"
        assert student.grade_id == ledger_data["grade1_id"]

    async def test_get_unknown_student(self, db_session: AsyncSession, ledger_data: dict):
        with pytest.raises(NotFoundError) as exc_info:
            await StudentService(db_session).get_student(9999)

        assert exc_info.value.status_code == 404

    async def test_exists_and_active(self, db_session: AsyncSession, ledger_data: dict):
        service = StudentService(db_session)

        assert await service.student_exists(ledger_data["student_id"]) is True
        assert await service.student_exists(9999) is False
        assert await service.is_active(ledger_data["student_id"]) is True
        assert await service.is_active(ledger_data["inactive_student_id"]) is False
        assert await service.is_active(9999) is False
