"""
Caller identity resolution.

Maps a keyed-in national ID to a student, and a class representative to the
class they currently represent and the classmates they may report for.
"""

import re
from dataclasses import dataclass

from celebration_ivr.students.models import Student, StudentClass
from celebration_ivr.students.repository import StudentRepository
from celebration_ivr.shared.logging import get_logger

logger = get_logger(__name__)

NATIONAL_ID_PATTERN = re.compile(r"^\d{9}$")


@dataclass(frozen=True)
class CallerIdentity:
    """Detached snapshot of a resolved student."""

    student_id: int
    tz: str
    name: str
    user_id: int | None = None
    class_id: int | None = None
    family_reference_id: str | None = None
    is_representative: bool = False

    @classmethod
    def from_student(cls, student: Student, is_representative: bool = False) -> "CallerIdentity":
        return cls(
            student_id=student.id,
            tz=student.tz,
            name=student.name,
            user_id=student.user_id,
            class_id=student.class_id,
            family_reference_id=student.family_reference_id,
            is_representative=is_representative,
        )


@dataclass(frozen=True)
class RepresentativeIdentity:
    """A class representative together with the active class they represent."""

    caller: CallerIdentity
    class_id: int
    class_name: str
    year: int

    @classmethod
    def from_class(cls, caller: CallerIdentity, student_class: StudentClass) -> "RepresentativeIdentity":
        return cls(
            caller=caller,
            class_id=student_class.id,
            class_name=student_class.name,
            year=student_class.year,
        )


def is_valid_national_id(value: str) -> bool:
    return bool(NATIONAL_ID_PATTERN.match(value))


class IdentityResolver:
    """Resolves callers against the student registry."""

    def __init__(self, students: StudentRepository) -> None:
        self._students = students

    async def resolve(self, national_id: str) -> CallerIdentity | None:
        """Look up the caller by national ID.

        Args:
            national_id: 9-digit national ID as keyed in.

        Returns:
            The caller identity, or None when no student matches. Malformed
            IDs never match.
        """
        if not is_valid_national_id(national_id):
            return None

        student = await self._students.get_by_tz(national_id)
        if student is None:
            logger.info("Caller not found", extra={"tz_suffix": national_id[-3:]})
            return None

        is_rep = await self._students.is_representative(student.id)
        return CallerIdentity.from_student(student, is_representative=is_rep)

    async def resolve_representative(
        self,
        caller: CallerIdentity,
        year: int,
    ) -> RepresentativeIdentity | None:
        """Resolve the active class a caller represents in ``year``."""
        student_class = await self._students.get_representative_class(caller.student_id, year)
        if student_class is None:
            logger.info(
                "No active class for representative",
                extra={"student_id": caller.student_id, "year": year},
            )
            return None
        return RepresentativeIdentity.from_class(caller, student_class)

    async def resolve_proxy_target(
        self,
        representative: RepresentativeIdentity,
        national_id: str,
    ) -> CallerIdentity | None:
        """Resolve whom a representative is reporting for.

        The target is either the representative themselves or a student
        currently in their class.
        """
        if not is_valid_national_id(national_id):
            return None
        if national_id == representative.caller.tz:
            return representative.caller

        student = await self._students.get_class_member_by_tz(national_id, representative.class_id)
        if student is None:
            return None
        return CallerIdentity.from_student(student)
