"""
Student repository for database reads used during a call.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from celebration_ivr.students.models import Student, StudentClass, Tatnikit


class StudentRepository:
    """Repository for student, class and class representative lookups."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get_by_tz(self, tz: str) -> Student | None:
        stmt = select(Student).where(Student.tz == tz)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def is_representative(self, student_id: int) -> bool:
        """Whether the student holds a class representative record in any year."""
        stmt = select(Tatnikit.id).where(Tatnikit.student_id == student_id).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_representative_class(
        self,
        student_id: int,
        year: int,
    ) -> StudentClass | None:
        """Get the active class a student represents in ``year``.

        Args:
            student_id: Representative's student id.
            year: School year.

        Returns:
            The class, or None when the student represents no active class.
        """
        stmt = (
            select(StudentClass)
            .join(Tatnikit, Tatnikit.class_id == StudentClass.id)
            .where(
                Tatnikit.student_id == student_id,
                Tatnikit.year == year,
                StudentClass.is_active.is_(True),
            )
            .order_by(Tatnikit.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_class_member_by_tz(self, tz: str, class_id: int) -> Student | None:
        stmt = select(Student).where(Student.tz == tz, Student.class_id == class_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
