"""
SQLAlchemy models for family-teacher assignments.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from celebration_ivr.shared.database import Base


class FamilyTeacherAssignment(Base):
    """Per (tenant, year, family) teacher pointer plus its append-only history.

    ``history`` entries are ``{eventId, teacherReferenceId, assignedAt, source}``;
    ``teacher_id`` always mirrors the last entry.
    """

    __tablename__ = "family_teacher_assignments"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "year",
            "family_reference_id",
            name="uq_family_teacher_assignment",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    family_reference_id: Mapped[str] = mapped_column(String(100), nullable=False)
    teacher_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("teachers.id", ondelete="SET NULL"),
        nullable=True,
    )
    history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
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
            f"<FamilyTeacherAssignment(family={self.family_reference_id}, "
            f"year={self.year}, teacher_id={self.teacher_id})>"
        )


class TeacherAssignmentRule(Base):
    """Maps classes or grades to the teacher a new family in them is assigned to.

    A rule with no ``year`` applies to every school year.
    """

    __tablename__ = "teacher_assignment_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    teacher_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("teachers.id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    class_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    grade_rules: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return (
            f"<TeacherAssignmentRule(teacher_id={self.teacher_id}, year={self.year}, "
            f"active={self.is_active})>"
        )
