"""
Storage-facing operations the call flows request through ``Query`` effects.

Each operation opens its own short session; none is held across a wait for
caller input.
"""

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from celebration_ivr.catalog.repository import CatalogItem, CatalogRepository
from celebration_ivr.catalog.texts import TextCatalog
from celebration_ivr.config import Settings, get_settings
from celebration_ivr.events.existence import EventExistenceResolver
from celebration_ivr.events.persistence import EventPersistenceService
from celebration_ivr.events.repository import EventRecord, EventRepository
from celebration_ivr.identity.resolver import CallerIdentity, IdentityResolver, RepresentativeIdentity
from celebration_ivr.shared.database import DatabaseManager
from celebration_ivr.shared.dates import school_year
from celebration_ivr.shared.exceptions import (
    IdentificationError,
    NoDataError,
    TransactionError,
)
from celebration_ivr.shared.logging import get_logger
from celebration_ivr.students.repository import StudentRepository

logger = get_logger(__name__)


class CallServices:
    """Facade over identity, catalog and event storage for one process."""

    OPERATIONS = frozenset(
        {
            "resolve_caller",
            "caller_history",
            "list_event_types",
            "list_level_types",
            "list_gifts",
            "find_existing",
            "save_event",
            "set_level_type",
            "save_gifts",
            "save_lottery_track",
            "save_fulfillment",
            "resolve_representative",
            "resolve_proxy_target",
            "confirm_proxy_report",
        }
    )

    def __init__(
        self,
        db: DatabaseManager,
        settings: Settings | None = None,
        persistence: EventPersistenceService | None = None,
    ) -> None:
        self._db = db
        self._settings = settings or get_settings()
        self._persistence = persistence or EventPersistenceService(db, self._settings)
        self._existence = EventExistenceResolver(db)

    async def execute(self, operation: str, params: Mapping[str, Any]) -> Any:
        """Dispatch a ``Query`` effect.

        Raises:
            ValueError: Unknown operation.
            TransactionError: Storage failed while reading.
        """
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown call operation: {operation}")
        try:
            return await getattr(self, operation)(**params)
        except SQLAlchemyError as e:
            logger.exception("Storage operation failed", extra={"operation": operation})
            raise TransactionError(f"{operation} failed: {e}") from e

    async def load_texts(self, user_id: int | None = None) -> TextCatalog:
        async with self._db.session() as session:
            rows = await CatalogRepository(session, user_id).list_texts()
        return TextCatalog.from_rows(rows)

    # Identity

    async def resolve_caller(self, national_id: str) -> CallerIdentity:
        async with self._db.session() as session:
            identity = await IdentityResolver(StudentRepository(session)).resolve(national_id)
        if identity is None:
            raise IdentificationError("Caller not found")
        return identity

    async def resolve_representative(self, caller: CallerIdentity, today: date) -> RepresentativeIdentity:
        year = school_year(today, self._settings.school_year_start_month)
        async with self._db.session() as session:
            rep = await IdentityResolver(StudentRepository(session)).resolve_representative(caller, year)
        if rep is None:
            raise IdentificationError(
                "Representative has no active class",
                message_key="TATNIKIT.NO_CLASS_FOUND",
            )
        return rep

    async def resolve_proxy_target(
        self,
        representative: RepresentativeIdentity,
        national_id: str,
    ) -> CallerIdentity | None:
        async with self._db.session() as session:
            return await IdentityResolver(StudentRepository(session)).resolve_proxy_target(
                representative, national_id
            )

    # Catalogs

    async def list_event_types(self, user_id: int | None = None) -> list[CatalogItem]:
        async with self._db.session() as session:
            items = await CatalogRepository(session, user_id).list_event_types()
        if not items:
            raise NoDataError("No event types configured", message_key="EVENT.NO_EVENT_TYPES")
        return items

    async def list_level_types(self, user_id: int | None = None) -> list[CatalogItem]:
        async with self._db.session() as session:
            return await CatalogRepository(session, user_id).list_level_types()

    async def list_gifts(self, user_id: int | None = None) -> list[CatalogItem]:
        async with self._db.session() as session:
            return await CatalogRepository(session, user_id).list_gifts()

    # Events

    async def caller_history(self, student_id: int) -> list[EventRecord]:
        async with self._db.session() as session:
            repo = EventRepository(session)
            return await repo.to_records(await repo.list_for_student(student_id))

    async def find_existing(
        self,
        student_id: int,
        event_type_id: int,
        event_date: date,
    ) -> EventRecord | None:
        return await self._existence.find_existing(student_id, event_type_id, event_date)

    async def save_event(
        self,
        existing: EventRecord | None,
        student: CallerIdentity,
        event_type: CatalogItem,
        event_date: date,
        level_type: CatalogItem | None = None,
        gifts: Sequence[CatalogItem] | None = None,
        reporter: CallerIdentity | None = None,
    ) -> EventRecord:
        return await self._persistence.save(
            existing,
            student,
            event_type,
            event_date,
            level_type=level_type,
            gifts=gifts,
            reporter=reporter,
        )

    async def set_level_type(self, event_id: int, level_type: CatalogItem) -> EventRecord:
        return await self._persistence.set_level_type(event_id, level_type)

    async def save_gifts(self, event_id: int, gifts: Sequence[CatalogItem]) -> EventRecord:
        return await self._persistence.save_gifts(event_id, gifts)

    async def save_lottery_track(self, event_id: int, track: int) -> EventRecord:
        return await self._persistence.save_lottery_track(event_id, track)

    async def save_fulfillment(
        self,
        event_id: int,
        answers: Sequence[int],
        completed_on: date,
        recording: str | None = None,
    ) -> EventRecord:
        return await self._persistence.save_fulfillment(event_id, answers, completed_on, recording)

    async def confirm_proxy_report(self, existing: EventRecord, reporter: CallerIdentity) -> EventRecord:
        return await self._persistence.confirm_proxy_report(existing, reporter)

