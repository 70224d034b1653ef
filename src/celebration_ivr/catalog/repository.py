"""
Catalog repository: event types, level types, gifts and operator texts.
"""

from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from celebration_ivr.catalog.models import EventType, Gift, LevelType, Text


@dataclass(frozen=True)
class CatalogItem:
    """Detached view of a keypad-selectable catalog row."""

    id: int
    key: int
    name: str
    description: str | None = None

    @classmethod
    def from_row(cls, row: EventType | LevelType | Gift) -> "CatalogItem":
        return cls(id=row.id, key=row.key, name=row.name, description=row.description)


class CatalogRepository:
    """Repository for keypad catalogs, scoped to one tenant."""

    def __init__(self, session: AsyncSession, user_id: int | None = None) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
            user_id: Tenant scope. Rows without a tenant are shared by all.
        """
        self._session = session
        self._user_id = user_id

    async def _list(self, model: type[EventType] | type[LevelType] | type[Gift]) -> list[CatalogItem]:
        stmt = select(model).order_by(model.key, model.id)
        if self._user_id is not None:
            stmt = stmt.where(or_(model.user_id == self._user_id, model.user_id.is_(None)))
        result = await self._session.execute(stmt)
        return [CatalogItem.from_row(row) for row in result.scalars().all()]

    async def list_event_types(self) -> list[CatalogItem]:
        return await self._list(EventType)

    async def list_level_types(self) -> list[CatalogItem]:
        return await self._list(LevelType)

    async def list_gifts(self) -> list[CatalogItem]:
        return await self._list(Gift)

    async def list_texts(self) -> list[Text]:
        """Operator text overrides; tenant rows win over shared rows.

        Without a tenant only shared rows apply.
        """
        stmt = select(Text)
        if self._user_id is None:
            stmt = stmt.where(Text.user_id.is_(None))
        else:
            stmt = stmt.where(or_(Text.user_id == self._user_id, Text.user_id.is_(None)))
        # Shared rows first so tenant rows overwrite them when folded into a dict
        stmt = stmt.order_by(Text.user_id.is_not(None), Text.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
