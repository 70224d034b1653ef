"""Import every ORM model so ``Base.metadata`` knows all tables."""

from celebration_ivr.assignments.models import FamilyTeacherAssignment, TeacherAssignmentRule
from celebration_ivr.catalog.models import EventType, Gift, LevelType, Text
from celebration_ivr.events.models import Event, EventGift
from celebration_ivr.students.models import Student, StudentClass, Tatnikit, Teacher

__all__ = [
    "Event",
    "EventGift",
    "EventType",
    "FamilyTeacherAssignment",
    "Gift",
    "LevelType",
    "Student",
    "StudentClass",
    "Tatnikit",
    "Teacher",
    "TeacherAssignmentRule",
    "Text",
]
