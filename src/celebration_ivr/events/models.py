"""
SQLAlchemy models for reported events and their gift selections.
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from celebration_ivr.shared.database import Base


class ReportOrigin(str, Enum):
    """Who phoned an event in, and who was first when both did."""

    ONLY_STUDENT = "only_student"
    ONLY_TATNIKIT = "only_tatnikit"
    BOTH_STUDENT_FIRST = "both_student_first"
    BOTH_TATNIKIT_FIRST = "both_tatnikit_first"


class Event(Base):
    """A reported celebration.

    No unique constraint on (student, type, date): the persistence service
    keeps one authoritative row per triple under a per-key lock, and edits
    update that row in place.
    """

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("event_types.id"),
        nullable=False,
    )
    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    event_hebrew_date: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_hebrew_month: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    level_type_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("level_types.id"),
        nullable=True,
    )
    teacher_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("teachers.id", ondelete="SET NULL"),
        nullable=True,
    )
    reporter_student_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="SET NULL"),
        nullable=True,
    )
    report_origin: Mapped[ReportOrigin | None] = mapped_column(
        SQLEnum(
            ReportOrigin,
            name="report_origin",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
    )
    lottery_track: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fulfillment_answers: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    fulfillment_recording: Mapped[str | None] = mapped_column(String(500), nullable=True)
    completion_report_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, student_id={self.student_id}, "
            f"type={self.event_type_id}, date={self.event_date})>"
        )


class EventGift(Base):
    """Join row between an event and one selected gift."""

    __tablename__ = "event_gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    gift_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("gifts.id"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<EventGift(event_id={self.event_id}, gift_id={self.gift_id})>"
