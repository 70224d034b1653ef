"""
Pytest configuration and fixtures.

Storage tests run against a file-backed SQLite database per test (aiosqlite),
seeded with one tenant, two classes and a small catalog.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio

import celebration_ivr.models  # noqa: F401
from celebration_ivr.assignments.models import TeacherAssignmentRule
from celebration_ivr.catalog.models import EventType, Gift, LevelType
from celebration_ivr.config import Settings
from celebration_ivr.dialogue.models import CallSession
from celebration_ivr.dialogue.orchestrator import CallOrchestrator
from celebration_ivr.dialogue.services import CallServices
from celebration_ivr.events.persistence import EventPersistenceService
from celebration_ivr.identity.resolver import CallerIdentity
from celebration_ivr.shared.database import DatabaseManager
from celebration_ivr.students.models import Student, StudentClass, Tatnikit, Teacher
from celebration_ivr.telephony.mock_adapter import MockVoiceGateway

TODAY = date(2024, 6, 1)
TENANT = 1


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        default_user_id=None,
        max_retries=3,
        max_gifts=3,
        lottery_track_count=3,
        fulfillment_question_count=3,
        fulfillment_max_level=3,
        fulfillment_record_comment=False,
        date_past_window_days=183,
    )


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[DatabaseManager, None]:
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'ivr.db'}")
    await manager.create_schema()
    yield manager
    await manager.close()


@dataclass(frozen=True)
class Seed:
    """Ids of the rows every storage test starts from."""

    class_a: int
    class_b: int
    teacher: int
    sarah: CallerIdentity
    rivka: CallerIdentity
    dina: CallerIdentity
    event_types: dict[str, int]
    level_types: dict[str, int]
    gifts: dict[str, int]


def _identity(student: Student, is_representative: bool = False) -> CallerIdentity:
    return CallerIdentity.from_student(student, is_representative=is_representative)


@pytest_asyncio.fixture
async def seed(db: DatabaseManager) -> Seed:
    async with db.session() as session:
        class_a = StudentClass(user_id=TENANT, name="Class A", grade="8", year=2024, is_active=True)
        class_b = StudentClass(user_id=TENANT, name="Class B", grade="8", year=2024, is_active=True)
        teacher = Teacher(user_id=TENANT, name="Mrs. Friedman")
        session.add_all([class_a, class_b, teacher])
        await session.flush()

        sarah = Student(user_id=TENANT, tz="123456789", name="Sarah Cohen", class_id=class_a.id, family_reference_id="FAM-1")
        rivka = Student(user_id=TENANT, tz="987654321", name="Rivka Levi", class_id=class_a.id, family_reference_id="FAM-2")
        dina = Student(user_id=TENANT, tz="555555555", name="Dina Katz", class_id=class_b.id, family_reference_id="FAM-3")
        session.add_all([sarah, rivka, dina])
        await session.flush()

        session.add(Tatnikit(user_id=TENANT, student_id=rivka.id, class_id=class_a.id, year=2024))
        session.add(TeacherAssignmentRule(user_id=TENANT, teacher_id=teacher.id, class_ids=[class_a.id], is_active=True))

        event_types = [
            EventType(user_id=TENANT, key=1, name="Birthday"),
            EventType(user_id=TENANT, key=2, name="Bat Mitzvah"),
            EventType(user_id=TENANT, key=3, name="Engagement"),
        ]
        level_types = [
            LevelType(user_id=TENANT, key=1, name="Basic"),
            LevelType(user_id=TENANT, key=2, name="Advanced"),
        ]
        gifts = [
            Gift(user_id=TENANT, key=1, name="Book"),
            Gift(user_id=TENANT, key=2, name="Necklace"),
            Gift(user_id=TENANT, key=3, name="Voucher"),
        ]
        session.add_all([*event_types, *level_types, *gifts])
        await session.flush()

        return Seed(
            class_a=class_a.id,
            class_b=class_b.id,
            teacher=teacher.id,
            sarah=_identity(sarah),
            rivka=_identity(rivka, is_representative=True),
            dina=_identity(dina),
            event_types={t.name: t.id for t in event_types},
            level_types={t.name: t.id for t in level_types},
            gifts={g.name: g.id for g in gifts},
        )


@pytest.fixture
def persistence(db: DatabaseManager, settings: Settings) -> EventPersistenceService:
    return EventPersistenceService(db, settings)


@pytest.fixture
def services(db: DatabaseManager, settings: Settings) -> CallServices:
    return CallServices(db, settings)


@pytest.fixture
def orchestrator(services: CallServices, settings: Settings) -> CallOrchestrator:
    return CallOrchestrator(services, settings)


CallRunner = Callable[..., Awaitable[tuple[CallSession, MockVoiceGateway]]]


@pytest.fixture
def run_call(orchestrator: CallOrchestrator) -> CallRunner:
    """Run one scripted call; returns the finished session and the gateway."""
    counter = {"n": 0}

    async def _run(inputs: Iterable[str], today: date = TODAY) -> tuple[CallSession, MockVoiceGateway]:
        counter["n"] += 1
        gateway = MockVoiceGateway(inputs)
        session = CallSession(call_id=f"call-{counter['n']}", phone="0501234567", today=today)
        await orchestrator.run(session, gateway)
        return session, gateway

    return _run
