"""Tests for family-teacher rules and the assignment history."""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from celebration_ivr.assignments.models import FamilyTeacherAssignment, TeacherAssignmentRule
from celebration_ivr.assignments.tracker import AssignmentSource, FamilyTeacherAssignmentTracker
from celebration_ivr.catalog.repository import CatalogItem
from celebration_ivr.events.persistence import EventPersistenceService
from celebration_ivr.identity.resolver import CallerIdentity
from celebration_ivr.shared.database import DatabaseManager
from celebration_ivr.students.models import Student, Teacher

from conftest import TENANT, Seed


async def _add_teachers(db: DatabaseManager, *names: str) -> list[int]:
    async with db.session() as session:
        teachers = [Teacher(user_id=TENANT, name=name) for name in names]
        session.add_all(teachers)
        await session.flush()
        return [t.id for t in teachers]


async def _aggregate(db: DatabaseManager, family: str) -> FamilyTeacherAssignment:
    async with db.session() as session:
        stmt = select(FamilyTeacherAssignment).where(FamilyTeacherAssignment.family_reference_id == family)
        return (await session.execute(stmt)).scalar_one()


class TestRecordAssignment:
    @pytest.mark.asyncio
    async def test_history_grows_and_pointer_follows_last_entry(self, db: DatabaseManager, seed: Seed) -> None:
        teacher_ids = [seed.teacher, *await _add_teachers(db, "Mrs. Weiss", "Mrs. Gold")]
        sources = [AssignmentSource.STUDENT_REPORT, AssignmentSource.TATNIKIT_REPORT, AssignmentSource.EVENT_EDIT]

        for event_id, (teacher_id, source) in enumerate(zip(teacher_ids, sources), start=100):
            async with db.session() as session:
                tracker = FamilyTeacherAssignmentTracker(session, TENANT)
                await tracker.record_assignment("FAM-9", 2024, teacher_id, event_id, source)

        aggregate = await _aggregate(db, "FAM-9")
        assert len(aggregate.history) == len(teacher_ids)
        assert [h["teacherReferenceId"] for h in aggregate.history] == teacher_ids
        assert [h["eventId"] for h in aggregate.history] == [100, 101, 102]
        assert aggregate.teacher_id == aggregate.history[-1]["teacherReferenceId"]

    @pytest.mark.asyncio
    async def test_years_are_separate_aggregates(self, db: DatabaseManager, seed: Seed) -> None:
        async with db.session() as session:
            tracker = FamilyTeacherAssignmentTracker(session, TENANT)
            await tracker.record_assignment("FAM-9", 2024, seed.teacher, 1, "student_report")
            await tracker.record_assignment("FAM-9", 2025, seed.teacher, 2, "student_report")

        async with db.session() as session:
            tracker = FamilyTeacherAssignmentTracker(session, TENANT)
            assert len((await tracker.get_assignment("FAM-9", 2024)).history) == 1
            assert len((await tracker.get_assignment("FAM-9", 2025)).history) == 1


class TestResolveTeacher:
    @pytest.mark.asyncio
    async def test_rule_for_another_year_is_ignored(self, db: DatabaseManager, seed: Seed) -> None:
        [last_year] = await _add_teachers(db, "Mrs. Weiss")
        async with db.session() as session:
            session.add(TeacherAssignmentRule(user_id=TENANT, teacher_id=last_year, year=2023, class_ids=[seed.class_b]))

        async with db.session() as session:
            tracker = FamilyTeacherAssignmentTracker(session, TENANT)
            assert await tracker.resolve_teacher("FAM-3", seed.class_b, 2024) is None
            assert await tracker.resolve_teacher("FAM-3", seed.class_b, 2023) == last_year

    @pytest.mark.asyncio
    async def test_rule_for_the_year_beats_yearless_rule(self, db: DatabaseManager, seed: Seed) -> None:
        [this_year] = await _add_teachers(db, "Mrs. Weiss")
        async with db.session() as session:
            session.add(TeacherAssignmentRule(user_id=TENANT, teacher_id=this_year, year=2024, class_ids=[seed.class_a]))

        async with db.session() as session:
            tracker = FamilyTeacherAssignmentTracker(session, TENANT)
            assert await tracker.resolve_teacher(None, seed.class_a, 2024) == this_year
            assert await tracker.resolve_teacher(None, seed.class_a, 2025) == seed.teacher

    @pytest.mark.asyncio
    async def test_grade_rule_covers_classes_without_their_own_rule(self, db: DatabaseManager, seed: Seed) -> None:
        [grade_teacher] = await _add_teachers(db, "Mrs. Weiss")
        async with db.session() as session:
            session.add(TeacherAssignmentRule(user_id=TENANT, teacher_id=grade_teacher, year=2024, grade_rules=["8"]))

        async with db.session() as session:
            tracker = FamilyTeacherAssignmentTracker(session, TENANT)
            # Class B is grade 8 with no class rule; class A keeps its class rule
            assert await tracker.resolve_teacher(None, seed.class_b, 2024) == grade_teacher
            assert await tracker.resolve_teacher(None, seed.class_a, 2024) == seed.teacher

    @pytest.mark.asyncio
    async def test_other_tenant_rules_are_ignored(self, db: DatabaseManager, seed: Seed) -> None:
        async with db.session() as session:
            session.add(TeacherAssignmentRule(user_id=TENANT + 1, teacher_id=seed.teacher, class_ids=[seed.class_b]))

        async with db.session() as session:
            tracker = FamilyTeacherAssignmentTracker(session, TENANT)
            assert await tracker.resolve_teacher(None, seed.class_b, 2024) is None


class TestSiblingReports:
    @pytest.mark.asyncio
    async def test_concurrent_first_reports_share_one_aggregate(
        self, db: DatabaseManager, seed: Seed, persistence: EventPersistenceService
    ) -> None:
        async with db.session() as session:
            sibling_row = Student(
                user_id=TENANT,
                tz="111111118",
                name="Leah Cohen",
                class_id=seed.class_a,
                family_reference_id="FAM-1",
            )
            session.add(sibling_row)
            await session.flush()
            sibling = CallerIdentity.from_student(sibling_row)
        birthday = CatalogItem(id=seed.event_types["Birthday"], key=1, name="Birthday")

        saved = await asyncio.gather(
            persistence.save(None, seed.sarah, birthday, date(2024, 5, 1), gifts=[]),
            persistence.save(None, sibling, birthday, date(2024, 5, 2), gifts=[]),
        )

        assert all(record.teacher_id == seed.teacher for record in saved)
        aggregate = await _aggregate(db, "FAM-1")
        assert sorted(h["eventId"] for h in aggregate.history) == sorted(r.id for r in saved)
