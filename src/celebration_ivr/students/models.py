"""
SQLAlchemy models for students, classes, class representatives and teachers.

These tables are owned by the administrative system; the call flow only reads
them.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from celebration_ivr.shared.database import Base


class Teacher(Base):
    """Teacher a family can be assigned to."""

    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Teacher(id={self.id}, name={self.name})>"


class StudentClass(Base):
    """A class (grade section) for one school year."""

    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    students: Mapped[list["Student"]] = relationship("Student", back_populates="student_class")

    def __repr__(self) -> str:
        return f"<StudentClass(id={self.id}, name={self.name}, year={self.year})>"


class Student(Base):
    """Student identity record keyed by national ID (tz)."""

    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    tz: Mapped[str] = mapped_column(String(9), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    class_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    family_reference_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    student_class: Mapped[StudentClass | None] = relationship(
        "StudentClass",
        back_populates="students",
    )

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, tz={self.tz})>"


class Tatnikit(Base):
    """Class representative appointment for one class and school year."""

    __tablename__ = "tatnikits"
    __table_args__ = (
        UniqueConstraint("user_id", "class_id", "year", name="uq_tatnikit_user_class_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    student_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Tatnikit(student_id={self.student_id}, class_id={self.class_id}, year={self.year})>"
