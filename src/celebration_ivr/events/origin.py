"""
Report-origin bookkeeping: who phoned an event in first.
"""

from enum import Enum

from celebration_ivr.events.models import ReportOrigin


class ReporterKind(str, Enum):
    """Who is saving the event on this call."""

    STUDENT = "student"
    TATNIKIT = "tatnikit"


_TRANSITIONS: dict[tuple[ReportOrigin | None, ReporterKind], ReportOrigin] = {
    (None, ReporterKind.STUDENT): ReportOrigin.ONLY_STUDENT,
    (None, ReporterKind.TATNIKIT): ReportOrigin.ONLY_TATNIKIT,
    (ReportOrigin.ONLY_STUDENT, ReporterKind.STUDENT): ReportOrigin.ONLY_STUDENT,
    (ReportOrigin.ONLY_STUDENT, ReporterKind.TATNIKIT): ReportOrigin.BOTH_STUDENT_FIRST,
    (ReportOrigin.ONLY_TATNIKIT, ReporterKind.TATNIKIT): ReportOrigin.ONLY_TATNIKIT,
    (ReportOrigin.ONLY_TATNIKIT, ReporterKind.STUDENT): ReportOrigin.BOTH_TATNIKIT_FIRST,
}


def next_report_origin(current: ReportOrigin | None, reporter: ReporterKind) -> ReportOrigin:
    """Origin after ``reporter`` saves an event whose origin is ``current``.

    Once both sides have reported, the origin no longer changes.
    """
    if current in (ReportOrigin.BOTH_STUDENT_FIRST, ReportOrigin.BOTH_TATNIKIT_FIRST):
        return current
    return _TRANSITIONS[(current, reporter)]


def reporter_kind(student_id: int, reporter_student_id: int | None) -> ReporterKind:
    """A representative reporting their own event reports as a student."""
    if reporter_student_id is None or reporter_student_id == student_id:
        return ReporterKind.STUDENT
    return ReporterKind.TATNIKIT
