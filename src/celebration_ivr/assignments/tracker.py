"""
Family-teacher assignment tracking.

Each (tenant, year, family) aggregate keeps an append-only history of which
teacher an event associated the family with. The current-teacher pointer is
the only field ever overwritten and always mirrors the last history entry.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from celebration_ivr.assignments.models import FamilyTeacherAssignment, TeacherAssignmentRule
from celebration_ivr.events.locking import acquire_advisory_xact_lock, family_lock_key
from celebration_ivr.shared.logging import get_logger
from celebration_ivr.students.models import StudentClass

logger = get_logger(__name__)


class AssignmentSource(str, Enum):
    """What produced a history entry."""

    STUDENT_REPORT = "student_report"
    TATNIKIT_REPORT = "tatnikit_report"
    EVENT_EDIT = "event_edit"


class FamilyTeacherAssignmentTracker:
    """Maintains family-teacher aggregates inside the caller's transaction."""

    def __init__(self, session: AsyncSession, user_id: int) -> None:
        """Initialize the tracker.

        Args:
            session: Session of the enclosing event transaction.
            user_id: Tenant scope of the aggregates.
        """
        self._session = session
        self._user_id = user_id

    async def get_assignment(self, family_reference: str, year: int) -> FamilyTeacherAssignment | None:
        stmt = select(FamilyTeacherAssignment).where(
            FamilyTeacherAssignment.user_id == self._user_id,
            FamilyTeacherAssignment.year == year,
            FamilyTeacherAssignment.family_reference_id == family_reference,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve_teacher(
        self,
        family_reference: str | None,
        class_id: int | None,
        year: int,
    ) -> int | None:
        """Teacher for a family's next event.

        The family's current assignment wins. Otherwise an active rule of
        the tenant: one naming the student's class beats one naming its
        grade, and a rule for ``year`` beats a rule without a year. None
        when nothing applies.
        """
        if family_reference:
            current = await self.get_assignment(family_reference, year)
            if current is not None and current.teacher_id is not None:
                return current.teacher_id

        if class_id is None:
            return None

        stmt = (
            select(TeacherAssignmentRule)
            .where(
                TeacherAssignmentRule.is_active.is_(True),
                or_(TeacherAssignmentRule.user_id == self._user_id, TeacherAssignmentRule.user_id.is_(None)),
                or_(TeacherAssignmentRule.year == year, TeacherAssignmentRule.year.is_(None)),
            )
            .order_by(TeacherAssignmentRule.year.is_(None), TeacherAssignmentRule.id)
        )
        rules = (await self._session.execute(stmt)).scalars().all()

        for rule in rules:
            if class_id in (rule.class_ids or []):
                return rule.teacher_id

        grade = await self._session.scalar(select(StudentClass.grade).where(StudentClass.id == class_id))
        if grade:
            for rule in rules:
                if grade in (rule.grade_rules or []):
                    return rule.teacher_id
        return None

    async def record_assignment(
        self,
        family_reference: str,
        year: int,
        teacher_id: int,
        event_id: int,
        source: AssignmentSource | str,
    ) -> FamilyTeacherAssignment:
        """Append a history entry and move the current pointer.

        Creates the aggregate with an empty history on a family's first
        event of the year.
        """
        await acquire_advisory_xact_lock(
            self._session, family_lock_key(self._user_id, year, family_reference)
        )

        aggregate = await self.get_assignment(family_reference, year)
        if aggregate is None:
            aggregate = FamilyTeacherAssignment(
                user_id=self._user_id,
                year=year,
                family_reference_id=family_reference,
                history=[],
            )
            self._session.add(aggregate)

        entry: dict[str, Any] = {
            "eventId": event_id,
            "teacherReferenceId": teacher_id,
            "assignedAt": datetime.now(timezone.utc).isoformat(),
            "source": AssignmentSource(source).value,
        }
        # Reassign rather than mutate so the JSON column is flagged dirty
        aggregate.history = [*(aggregate.history or []), entry]
        aggregate.teacher_id = teacher_id
        await self._session.flush()

        logger.info(
            "Family teacher assignment recorded",
            extra={
                "family_reference": family_reference,
                "year": year,
                "teacher_id": teacher_id,
                "event_id": event_id,
                "source": entry["source"],
                "history_length": len(aggregate.history),
            },
        )
        return aggregate
