"""
SQLAlchemy models for the keypad-selectable catalogs and operator texts.
"""

from sqlalchemy import Integer, String, Text as SQLText, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from celebration_ivr.shared.database import Base


class CatalogItemMixin:
    """Columns shared by catalogs selected by a numeric keypad key."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    key: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)


class EventType(CatalogItemMixin, Base):
    """Kind of celebration (bat mitzvah, engagement, ...)."""

    __tablename__ = "event_types"

    def __repr__(self) -> str:
        return f"<EventType(key={self.key}, name={self.name})>"


class LevelType(CatalogItemMixin, Base):
    """Track/level classification attached to an event."""

    __tablename__ = "level_types"

    def __repr__(self) -> str:
        return f"<LevelType(key={self.key}, name={self.name})>"


class Gift(CatalogItemMixin, Base):
    """Voucher/gift a caller can pick for an event."""

    __tablename__ = "gifts"

    def __repr__(self) -> str:
        return f"<Gift(key={self.key}, name={self.name})>"


class Text(Base):
    """Operator override for one symbolic caller-facing text."""

    __tablename__ = "texts"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_texts_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(SQLText, nullable=False)
    filepath: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Text(name={self.name})>"
