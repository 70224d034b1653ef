"""Tests for event existence checks and transactional persistence."""

import asyncio
from datetime import date

import pytest
from sqlalchemy import func, select

from celebration_ivr.assignments.models import FamilyTeacherAssignment
from celebration_ivr.catalog.repository import CatalogItem
from celebration_ivr.config import Settings
from celebration_ivr.events.existence import EventExistenceResolver
from celebration_ivr.events.models import Event, EventGift, ReportOrigin
from celebration_ivr.events.persistence import EventPersistenceService
from celebration_ivr.identity.resolver import CallerIdentity
from celebration_ivr.shared.database import DatabaseManager
from celebration_ivr.shared.exceptions import NotFoundError, PersistenceError

from conftest import Seed

EVENT_DATE = date(2024, 6, 15)


def _item(item_id: int, key: int = 1, name: str = "") -> CatalogItem:
    return CatalogItem(id=item_id, key=key, name=name)


async def _count(db: DatabaseManager, model: type) -> int:
    async with db.session() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestEventExistence:
    @pytest.mark.asyncio
    async def test_absent_then_present(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        resolver = EventExistenceResolver(db)
        bat_mitzvah = seed.event_types["Bat Mitzvah"]

        assert await resolver.find_existing(seed.sarah.student_id, bat_mitzvah, EVENT_DATE) is None

        saved = await persistence.save(None, seed.sarah, _item(bat_mitzvah), EVENT_DATE)
        found = await resolver.find_existing(seed.sarah.student_id, bat_mitzvah, EVENT_DATE)

        assert found is not None
        assert found.id == saved.id
        assert found.event_type_name == "Bat Mitzvah"

    @pytest.mark.asyncio
    async def test_exact_match_only(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        bat_mitzvah = seed.event_types["Bat Mitzvah"]
        await persistence.save(None, seed.sarah, _item(bat_mitzvah), EVENT_DATE)
        resolver = EventExistenceResolver(db)

        assert await resolver.find_existing(seed.sarah.student_id, bat_mitzvah, date(2024, 6, 16)) is None
        assert await resolver.find_existing(seed.sarah.student_id, seed.event_types["Birthday"], EVENT_DATE) is None
        assert await resolver.find_existing(seed.rivka.student_id, bat_mitzvah, EVENT_DATE) is None


class TestEventSave:
    @pytest.mark.asyncio
    async def test_create_persists_event_gifts_and_teacher(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        gifts = [_item(seed.gifts["Book"]), _item(seed.gifts["Voucher"])]

        record = await persistence.save(
            None,
            seed.sarah,
            _item(seed.event_types["Bat Mitzvah"]),
            EVENT_DATE,
            level_type=_item(seed.level_types["Basic"]),
            gifts=gifts,
        )

        assert record.gift_ids == (seed.gifts["Book"], seed.gifts["Voucher"])
        assert record.level_type_id == seed.level_types["Basic"]
        assert record.teacher_id == seed.teacher
        assert record.report_origin is ReportOrigin.ONLY_STUDENT
        assert record.year == 2024
        async with db.session() as session:
            event = await session.get(Event, record.id)
            assert event.user_id == seed.sarah.user_id
            assert event.event_hebrew_date == "9 Sivan 5784"
            assert event.event_hebrew_month == "Sivan"

    @pytest.mark.asyncio
    async def test_same_triple_twice_updates_in_place(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        event_type = _item(seed.event_types["Bat Mitzvah"])
        first = await persistence.save(None, seed.sarah, event_type, EVENT_DATE, gifts=[_item(seed.gifts["Book"])])

        # A second call whose existence check ran before the first committed
        second = await persistence.save(
            None,
            seed.sarah,
            event_type,
            EVENT_DATE,
            gifts=[_item(seed.gifts["Necklace"]), _item(seed.gifts["Voucher"])],
        )

        assert second.id == first.id
        assert second.gift_ids == (seed.gifts["Necklace"], seed.gifts["Voucher"])
        assert await _count(db, Event) == 1
        assert await _count(db, EventGift) == 2

    @pytest.mark.asyncio
    async def test_gifts_none_leaves_gift_set_untouched(
        self, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        event_type = _item(seed.event_types["Birthday"])
        first = await persistence.save(None, seed.sarah, event_type, EVENT_DATE, gifts=[_item(seed.gifts["Book"])])

        again = await persistence.save(first, seed.sarah, event_type, EVENT_DATE, gifts=None)

        assert again.gift_ids == (seed.gifts["Book"],)

    @pytest.mark.asyncio
    async def test_concurrent_creates_yield_one_event(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        event_type = _item(seed.event_types["Engagement"])

        records = await asyncio.gather(
            *(persistence.save(None, seed.sarah, event_type, EVENT_DATE, gifts=[]) for _ in range(5))
        )

        assert len({r.id for r in records}) == 1
        assert await _count(db, Event) == 1

    @pytest.mark.asyncio
    async def test_missing_tenant_without_default_fails(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        orphan = CallerIdentity(student_id=seed.sarah.student_id, tz=seed.sarah.tz, name="Sarah", user_id=None)

        with pytest.raises(PersistenceError):
            await persistence.save(None, orphan, _item(seed.event_types["Birthday"]), EVENT_DATE)
        assert await _count(db, Event) == 0

    @pytest.mark.asyncio
    async def test_missing_tenant_uses_configured_default(
        self, db: DatabaseManager, seed: Seed, settings: Settings
    ) -> None:
        service = EventPersistenceService(db, settings.model_copy(update={"default_user_id": 42}))
        orphan = CallerIdentity(student_id=seed.sarah.student_id, tz=seed.sarah.tz, name="Sarah", user_id=None)

        record = await service.save(None, orphan, _item(seed.event_types["Birthday"]), EVENT_DATE)

        async with db.session() as session:
            assert (await session.get(Event, record.id)).user_id == 42

    @pytest.mark.asyncio
    async def test_gifts_for_missing_event(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        with pytest.raises(NotFoundError):
            await persistence.save_gifts(999_999, [_item(seed.gifts["Book"])])
        assert await _count(db, EventGift) == 0


class TestReportOrigin:
    @pytest.mark.asyncio
    async def test_student_then_representative(self, seed: Seed, persistence: EventPersistenceService) -> None:
        event_type = _item(seed.event_types["Birthday"])
        first = await persistence.save(None, seed.sarah, event_type, EVENT_DATE, gifts=[])

        confirmed = await persistence.confirm_proxy_report(first, seed.rivka)

        assert confirmed.report_origin is ReportOrigin.BOTH_STUDENT_FIRST
        assert confirmed.reporter_student_id == seed.rivka.student_id

    @pytest.mark.asyncio
    async def test_representative_then_student(self, seed: Seed, persistence: EventPersistenceService) -> None:
        event_type = _item(seed.event_types["Birthday"])
        proxy = await persistence.save(None, seed.sarah, event_type, EVENT_DATE, reporter=seed.rivka)
        assert proxy.report_origin is ReportOrigin.ONLY_TATNIKIT
        assert proxy.gift_ids == ()

        own = await persistence.save(proxy, seed.sarah, event_type, EVENT_DATE, gifts=[])

        assert own.report_origin is ReportOrigin.BOTH_TATNIKIT_FIRST

    @pytest.mark.asyncio
    async def test_representative_reporting_own_event(self, seed: Seed, persistence: EventPersistenceService) -> None:
        record = await persistence.save(
            None, seed.rivka, _item(seed.event_types["Birthday"]), EVENT_DATE, reporter=seed.rivka
        )

        assert record.report_origin is ReportOrigin.ONLY_STUDENT
        assert record.reporter_student_id is None


class TestEventUpdates:
    @pytest.mark.asyncio
    async def test_level_lottery_and_fulfillment(self, seed: Seed, persistence: EventPersistenceService) -> None:
        event = await persistence.save(None, seed.sarah, _item(seed.event_types["Birthday"]), EVENT_DATE, gifts=[])

        with_level = await persistence.set_level_type(event.id, _item(seed.level_types["Advanced"]))
        with_track = await persistence.save_lottery_track(event.id, 2)
        done = await persistence.save_fulfillment(event.id, [3, 2, 1], date(2024, 7, 1), "rec/1.wav")

        assert with_level.level_type_id == seed.level_types["Advanced"]
        assert with_track.lottery_track == 2
        assert done.completed is True
        assert done.fulfillment_answers == (3, 2, 1)

    @pytest.mark.asyncio
    async def test_update_of_missing_event(self, persistence: EventPersistenceService, seed: Seed) -> None:
        with pytest.raises(NotFoundError):
            await persistence.save_lottery_track(999_999, 1)


class TestAssignmentHistory:
    @pytest.mark.asyncio
    async def test_create_then_edit_appends_history(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        event_type = _item(seed.event_types["Bat Mitzvah"])
        first = await persistence.save(None, seed.sarah, event_type, EVENT_DATE, gifts=[])
        await persistence.save(first, seed.sarah, event_type, EVENT_DATE, gifts=[])

        async with db.session() as session:
            aggregate = (
                await session.execute(
                    select(FamilyTeacherAssignment).where(FamilyTeacherAssignment.family_reference_id == "FAM-1")
                )
            ).scalar_one()

        assert aggregate.teacher_id == seed.teacher
        assert [h["source"] for h in aggregate.history] == ["student_report", "event_edit"]
        assert all(h["eventId"] == first.id for h in aggregate.history)

    @pytest.mark.asyncio
    async def test_no_rule_no_assignment(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        record = await persistence.save(None, seed.dina, _item(seed.event_types["Birthday"]), EVENT_DATE, gifts=[])

        assert record.teacher_id is None
        assert await _count(db, FamilyTeacherAssignment) == 0
