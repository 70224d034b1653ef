"""
Event repository for database operations.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from celebration_ivr.catalog.models import EventType
from celebration_ivr.events.models import Event, EventGift, ReportOrigin


@dataclass(frozen=True)
class EventRecord:
    """Detached snapshot of an event and its gift set."""

    id: int
    student_id: int
    event_type_id: int
    event_date: date
    event_type_name: str = ""
    level_type_id: int | None = None
    teacher_id: int | None = None
    reporter_student_id: int | None = None
    report_origin: ReportOrigin | None = None
    lottery_track: int | None = None
    fulfillment_answers: tuple[int, ...] | None = None
    completed: bool = False
    year: int | None = None
    gift_ids: tuple[int, ...] = ()

    @property
    def has_gifts(self) -> bool:
        return bool(self.gift_ids)


class EventRepository:
    """Repository for event and event-gift rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def find_by_triple(
        self,
        student_id: int,
        event_type_id: int,
        event_date: date,
    ) -> Event | None:
        """Get the authoritative event for a (student, type, date) triple.

        Legacy duplicates may exist; the oldest row wins.
        """
        stmt = (
            select(Event)
            .where(
                Event.student_id == student_id,
                Event.event_type_id == event_type_id,
                Event.event_date == event_date,
            )
            .order_by(Event.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, event_id: int) -> Event | None:
        return await self._session.get(Event, event_id)

    async def count_by_triple(self, student_id: int, event_type_id: int, event_date: date) -> int:
        stmt = select(Event.id).where(
            Event.student_id == student_id,
            Event.event_type_id == event_type_id,
            Event.event_date == event_date,
        )
        result = await self._session.execute(stmt)
        return len(result.scalars().all())

    async def list_for_student(self, student_id: int) -> list[Event]:
        stmt = select(Event).where(Event.student_id == student_id).order_by(Event.event_date, Event.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_gift_ids(self, event_ids: Sequence[int]) -> dict[int, tuple[int, ...]]:
        """Map event ids to their selected gift ids, in selection order."""
        if not event_ids:
            return {}
        stmt = (
            select(EventGift.event_id, EventGift.gift_id)
            .where(EventGift.event_id.in_(event_ids))
            .order_by(EventGift.id)
        )
        result = await self._session.execute(stmt)
        gifts: dict[int, list[int]] = {event_id: [] for event_id in event_ids}
        for row in result.all():
            gifts[row.event_id].append(row.gift_id)
        return {event_id: tuple(ids) for event_id, ids in gifts.items()}

    async def replace_gifts(self, event_id: int, gift_ids: Sequence[int]) -> None:
        """Replace the whole gift set of an event (delete, then insert)."""
        await self._session.execute(delete(EventGift).where(EventGift.event_id == event_id))
        self._session.add_all([EventGift(event_id=event_id, gift_id=gift_id) for gift_id in gift_ids])
        await self._session.flush()

    async def to_records(self, events: Sequence[Event]) -> list[EventRecord]:
        """Snapshot ORM events, resolving type names and gift sets."""
        if not events:
            return []
        ids = [e.id for e in events]
        type_ids = {e.event_type_id for e in events}
        names_result = await self._session.execute(
            select(EventType.id, EventType.name).where(EventType.id.in_(type_ids))
        )
        type_names = {row.id: row.name for row in names_result.all()}
        gifts = await self.get_gift_ids(ids)

        return [
            EventRecord(
                id=e.id,
                student_id=e.student_id,
                event_type_id=e.event_type_id,
                event_date=e.event_date,
                event_type_name=type_names.get(e.event_type_id, ""),
                level_type_id=e.level_type_id,
                teacher_id=e.teacher_id,
                reporter_student_id=e.reporter_student_id,
                report_origin=e.report_origin,
                lottery_track=e.lottery_track,
                fulfillment_answers=tuple(e.fulfillment_answers) if e.fulfillment_answers is not None else None,
                completed=e.completed,
                year=e.year,
                gift_ids=gifts.get(e.id, ()),
            )
            for e in events
        ]

    async def to_record(self, event: Event) -> EventRecord:
        records = await self.to_records([event])
        return records[0]
