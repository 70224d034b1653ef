"""
Event persistence service.

Creates or updates an event, replaces its gift set and records the derived
family-teacher assignment, all inside one transaction. The existence check
is repeated under a per-(student, type, date) lock so two concurrent calls
for the same triple cannot both take the create branch; a per-family lock
keeps siblings from both creating the year's assignment aggregate.
"""

from collections.abc import Sequence
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from celebration_ivr.assignments.tracker import AssignmentSource, FamilyTeacherAssignmentTracker
from celebration_ivr.catalog.repository import CatalogItem
from celebration_ivr.config import Settings, get_settings
from celebration_ivr.events.locking import (
    KeyedLocks,
    acquire_advisory_xact_lock,
    event_lock_key,
    family_lock_key,
)
from celebration_ivr.events.models import Event
from celebration_ivr.events.origin import ReporterKind, next_report_origin, reporter_kind
from celebration_ivr.events.repository import EventRecord, EventRepository
from celebration_ivr.identity.resolver import CallerIdentity
from celebration_ivr.shared.database import DatabaseManager
from celebration_ivr.shared.dates import format_hebrew_date, hebrew_month_name, school_year
from celebration_ivr.shared.exceptions import NotFoundError, PersistenceError, TransactionError
from celebration_ivr.shared.logging import get_logger

logger = get_logger(__name__)

# One registry per process: every service instance must serialize on it.
_event_locks = KeyedLocks()


class EventPersistenceService:
    """Service for persisting events and their derived state atomically."""

    def __init__(
        self,
        db: DatabaseManager,
        settings: Settings | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._db = db
        self._settings = settings or get_settings()
        self._locks = locks or _event_locks

    def _tenant(self, student: CallerIdentity) -> int:
        user_id = student.user_id if student.user_id is not None else self._settings.default_user_id
        if user_id is None:
            raise PersistenceError(
                f"Student {student.student_id} has no tenant and DEFAULT_USER_ID is not configured"
            )
        return user_id

    async def save(
        self,
        existing: EventRecord | None,
        student: CallerIdentity,
        event_type: CatalogItem,
        event_date: date,
        level_type: CatalogItem | None = None,
        gifts: Sequence[CatalogItem] | None = None,
        reporter: CallerIdentity | None = None,
    ) -> EventRecord:
        """Create or update the event for (student, event_type, event_date).

        Args:
            existing: Event found by the existence check earlier in the call,
                or None when the caller was told a new event is created.
            student: Whose event it is.
            event_type: Selected event type.
            event_date: Event date.
            level_type: Optional level type; None keeps the stored one on edit.
            gifts: Full gift selection replacing the stored set. None leaves
                the stored set untouched.
            reporter: Class representative reporting on the student's behalf.

        Returns:
            The saved event.

        Raises:
            PersistenceError: The transaction failed and was rolled back.
        """
        user_id = self._tenant(student)
        key = event_lock_key(student.student_id, event_type.id, event_date)
        year = school_year(event_date, self._settings.school_year_start_month)
        # Siblings share one assignment aggregate per year
        lock_keys = [key]
        if student.family_reference_id:
            lock_keys.append(family_lock_key(user_id, year, student.family_reference_id))
        reporter_id = reporter.student_id if reporter is not None else None
        kind = reporter_kind(student.student_id, reporter_id)

        try:
            async with self._locks.hold_all(*lock_keys):
                async with self._db.session() as session:
                    await acquire_advisory_xact_lock(session, key)
                    repo = EventRepository(session)

                    # Re-validate under the lock: another call may have created it
                    event = await repo.find_by_triple(student.student_id, event_type.id, event_date)
                    if event is None and existing is not None:
                        event = await repo.get_by_id(existing.id)
                    editing = event is not None
                    if existing is None and editing:
                        logger.info(
                            "Event created concurrently; saving as edit",
                            extra={"event_id": event.id, "student_id": student.student_id},
                        )

                    if event is None:
                        event = Event(
                            user_id=user_id,
                            student_id=student.student_id,
                            event_type_id=event_type.id,
                            event_date=event_date,
                            completed=False,
                        )
                        session.add(event)

                    event.year = year
                    event.event_hebrew_date = format_hebrew_date(event_date)
                    event.event_hebrew_month = hebrew_month_name(event_date)
                    if level_type is not None:
                        event.level_type_id = level_type.id
                    if kind is ReporterKind.TATNIKIT:
                        event.reporter_student_id = reporter_id
                    event.report_origin = next_report_origin(event.report_origin if editing else None, kind)
                    await session.flush()

                    if gifts is not None:
                        await repo.replace_gifts(event.id, [g.id for g in gifts])

                    await self._track_teacher(session, event, student, user_id, editing, kind)
                    record = await repo.to_record(event)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.exception(
                "Event save failed",
                extra={"student_id": student.student_id, "event_type_id": event_type.id},
            )
            raise TransactionError(f"Failed to save event: {e}") from e

        logger.info(
            "Event saved",
            extra={
                "event_id": record.id,
                "student_id": record.student_id,
                "event_type_id": record.event_type_id,
                "event_date": record.event_date.isoformat(),
                "mode": "edit" if editing else "create",
                "gift_count": len(record.gift_ids),
                "report_origin": record.report_origin.value if record.report_origin else None,
            },
        )
        return record

    async def _track_teacher(
        self,
        session: AsyncSession,
        event: Event,
        student: CallerIdentity,
        user_id: int,
        editing: bool,
        kind: ReporterKind,
    ) -> None:
        tracker = FamilyTeacherAssignmentTracker(session, user_id)
        teacher_id = await tracker.resolve_teacher(student.family_reference_id, student.class_id, event.year)
        if teacher_id is None:
            return

        event.teacher_id = teacher_id
        if not student.family_reference_id:
            return

        if editing:
            source = AssignmentSource.EVENT_EDIT
        elif kind is ReporterKind.TATNIKIT:
            source = AssignmentSource.TATNIKIT_REPORT
        else:
            source = AssignmentSource.STUDENT_REPORT
        await tracker.record_assignment(
            student.family_reference_id,
            event.year,
            teacher_id,
            event.id,
            source,
        )

    async def _update(self, event_id: int, **values: object) -> EventRecord:
        """Apply scalar updates to one event in its own transaction."""
        try:
            async with self._db.session() as session:
                repo = EventRepository(session)
                event = await repo.get_by_id(event_id)
                if event is None:
                    raise NotFoundError(f"Event not found: {event_id}")
                for name, value in values.items():
                    setattr(event, name, value)
                await session.flush()
                record = await repo.to_record(event)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.exception("Event update failed", extra={"event_id": event_id})
            raise TransactionError(f"Failed to update event {event_id}: {e}") from e

        logger.info("Event updated", extra={"event_id": event_id, "fields": sorted(values)})
        return record

    async def set_level_type(self, event_id: int, level_type: CatalogItem) -> EventRecord:
        return await self._update(event_id, level_type_id=level_type.id)

    async def save_lottery_track(self, event_id: int, track: int) -> EventRecord:
        return await self._update(event_id, lottery_track=track)

    async def save_fulfillment(
        self,
        event_id: int,
        answers: Sequence[int],
        completed_on: date,
        recording: str | None = None,
    ) -> EventRecord:
        return await self._update(
            event_id,
            fulfillment_answers=list(answers),
            fulfillment_recording=recording,
            completion_report_date=completed_on,
            completed=True,
        )

    async def save_gifts(self, event_id: int, gifts: Sequence[CatalogItem]) -> EventRecord:
        """Replace the gift set of an existing event."""
        try:
            async with self._db.session() as session:
                repo = EventRepository(session)
                event = await repo.get_by_id(event_id)
                if event is None:
                    raise NotFoundError(f"Event not found: {event_id}")
                await repo.replace_gifts(event.id, [g.id for g in gifts])
                record = await repo.to_record(event)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.exception("Gift save failed", extra={"event_id": event_id})
            raise TransactionError(f"Failed to save gifts for event {event_id}: {e}") from e

        logger.info("Event gifts replaced", extra={"event_id": event_id, "gift_ids": list(record.gift_ids)})
        return record

    async def confirm_proxy_report(self, existing: EventRecord, reporter: CallerIdentity) -> EventRecord:
        """A representative confirms an event that is already registered."""
        try:
            async with self._db.session() as session:
                repo = EventRepository(session)
                event = await repo.get_by_id(existing.id)
                if event is None:
                    raise NotFoundError(f"Event not found: {existing.id}")
                kind = reporter_kind(event.student_id, reporter.student_id)
                if kind is ReporterKind.TATNIKIT:
                    event.reporter_student_id = reporter.student_id
                event.report_origin = next_report_origin(event.report_origin, kind)
                await session.flush()
                record = await repo.to_record(event)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.exception("Proxy confirmation failed", extra={"event_id": existing.id})
            raise TransactionError(f"Failed to confirm event {existing.id}: {e}") from e

        logger.info(
            "Proxy report confirmed",
            extra={"event_id": record.id, "reporter_student_id": reporter.student_id},
        )
        return record
