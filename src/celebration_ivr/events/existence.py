"""
Event existence resolution.

Decides create-versus-edit before any event data is collected: an exact match
on (student, event type, date) means the caller is editing that event.
"""

from datetime import date

from celebration_ivr.events.repository import EventRecord, EventRepository
from celebration_ivr.shared.database import DatabaseManager


class EventExistenceResolver:
    """Looks up the authoritative event for a (student, type, date) triple."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def find_existing(
        self,
        student_id: int,
        event_type_id: int,
        event_date: date,
    ) -> EventRecord | None:
        """Exact match on the triple; no date-window fuzzing."""
        async with self._db.session() as session:
            repo = EventRepository(session)
            event = await repo.find_by_triple(student_id, event_type_id, event_date)
            if event is None:
                return None
            return await repo.to_record(event)
