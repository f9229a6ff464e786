"""Read-only student directory used by the fee ledger."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError
from src.modules.students.models import Student


class StudentService:
    """Lookups against student records. The ledger never writes students."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_student(self, student_id: int) -> Student | None:
        result = await self.db.execute(select(Student).where(Student.id == student_id))
        return result.scalar_one_or_none()

    async def get_student(self, student_id: int) -> Student:
        student = await self.find_student(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        return student

    async def student_exists(self, student_id: int) -> bool:
        return await self.find_student(student_id) is not None

    async def is_active(self, student_id: int) -> bool:
        student = await self.find_student(student_id)
        return student is not None and student.is_active
