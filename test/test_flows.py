"""Tests for the pure sub-flow transitions."""

from datetime import date

import pytest

from celebration_ivr.catalog.repository import CatalogItem
from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.config import Settings
from celebration_ivr.dialogue.effects import Ask, Finish, FlowState, Handoff, Query, Say, Transition
from celebration_ivr.dialogue.flows import build_flows
from celebration_ivr.dialogue.flows.common import DateEntry, GiftSelection
from celebration_ivr.dialogue.flows.identify import IdentifyFlow
from celebration_ivr.dialogue.flows.lottery import LotteryFlow
from celebration_ivr.dialogue.flows.main_menu import MainMenuFlow, menu_options
from celebration_ivr.dialogue.flows.track_selection import TrackSelectionFlow
from celebration_ivr.dialogue.models import CallOutcome, CallSession, CallState
from celebration_ivr.events.repository import EventRecord
from celebration_ivr.identity.resolver import CallerIdentity

TODAY = date(2024, 6, 1)
CALLER = CallerIdentity(student_id=7, tz="123456789", name="Sarah Cohen", user_id=1)
GIFTS = (
    CatalogItem(id=11, key=1, name="Book"),
    CatalogItem(id=12, key=2, name="Necklace"),
    CatalogItem(id=13, key=3, name="Voucher"),
)


def _event(event_id: int, event_date: date, **fields) -> EventRecord:
    return EventRecord(
        id=event_id,
        student_id=CALLER.student_id,
        event_type_id=1,
        event_date=event_date,
        event_type_name="Birthday",
        **fields,
    )


@pytest.fixture
def session() -> CallSession:
    return CallSession(call_id="flow-test", today=TODAY, identity=CALLER)


class TestMenuOptions:
    def test_new_caller_can_only_report(self) -> None:
        options = menu_options(CALLER, [], TODAY)

        assert [(key, target) for key, target, _ in options] == [("1", CallState.REPORT_EVENT)]

    def test_upcoming_event_enables_follow_ups_but_not_fulfillment(self) -> None:
        options = menu_options(CALLER, [_event(1, date(2024, 7, 1))], TODAY)

        targets = [target for _, target, _ in options]
        assert CallState.TRACK_SELECTION in targets
        assert CallState.LOTTERY in targets
        assert CallState.FULFILLMENT not in targets

    def test_past_event_enables_fulfillment(self) -> None:
        options = menu_options(CALLER, [_event(1, date(2024, 5, 1))], TODAY)

        assert ("4", CallState.FULFILLMENT) in [(key, target) for key, target, _ in options]

    def test_event_today_is_not_past(self) -> None:
        options = menu_options(CALLER, [_event(1, TODAY)], TODAY)

        assert CallState.FULFILLMENT not in [target for _, target, _ in options]

    def test_representative_gets_proxy_option(self) -> None:
        rep = CallerIdentity(student_id=8, tz="987654321", name="Rivka", is_representative=True)

        options = menu_options(rep, [], TODAY)

        assert options[-1][:2] == ("6", CallState.PROXY_MENU)


class TestIdentifyFlow:
    def test_greets_then_asks_for_id(self, settings: Settings, session: CallSession) -> None:
        transition = IdentifyFlow(settings).start(session, {})

        assert isinstance(transition.effect, Say)
        assert transition.effect.prompts == (Prompt("GENERAL.WELCOME"),)
        assert isinstance(transition.effect.then, Ask)
        assert transition.effect.then.step.name == "national_id"

    def test_resolved_caller_hands_off_to_main_menu(self, settings: Settings, session: CallSession) -> None:
        flow = IdentifyFlow(settings)
        lookup = flow.advance(session, FlowState("national_id"), "123456789")
        assert lookup.effect == Query("resolve_caller", {"national_id": "123456789"})

        handoff = flow.advance(session, lookup.state, CALLER).effect

        assert isinstance(handoff, Handoff)
        assert handoff.target is CallState.MAIN_MENU
        assert handoff.identity == CALLER
        assert handoff.params == {"greet": True}


class TestMainMenuFlow:
    def test_greets_before_loading_history(self, settings: Settings, session: CallSession) -> None:
        session.identity = CALLER

        transition = MainMenuFlow(settings).start(session, {"greet": True})

        assert isinstance(transition.effect, Say)
        assert transition.effect.prompts == (Prompt.of("STUDENT.GREETING", name="Sarah Cohen"),)
        assert transition.effect.then == Query("caller_history", {"student_id": 7})

    def test_returning_to_menu_skips_greeting(self, settings: Settings, session: CallSession) -> None:
        session.identity = CALLER

        transition = MainMenuFlow(settings).start(session, {})

        assert transition.effect == Query("caller_history", {"student_id": 7})


class TestDateEntry:
    def test_confirmed_date_completes_the_loop(self, settings: Settings, session: CallSession) -> None:
        entry = DateEntry(settings)
        asked = entry.advance(session, FlowState("date"), "1506")
        assert isinstance(asked, Transition)
        assert asked.state["event_date"] == date(2024, 6, 15)

        done = entry.advance(session, asked.state, "1")

        assert done == asked.state.to("date_done")

    def test_rejections_are_bounded(self, settings: Settings, session: CallSession) -> None:
        entry = DateEntry(settings)
        state = FlowState("date_confirm", {"event_date": date(2024, 6, 15)})

        results = []
        for _ in range(settings.max_retries):
            result = entry.advance(session, state, "2")
            results.append(result)
            state = result.state.to("date_confirm")

        assert all(isinstance(r.effect, Ask) for r in results[:-1])
        assert isinstance(results[-1].effect, Finish)
        assert results[-1].effect.outcome is CallOutcome.MAX_ATTEMPTS


class TestHebrewDateEntry:
    @pytest.fixture
    def entry(self, settings: Settings) -> DateEntry:
        return DateEntry(settings.model_copy(update={"date_calendar": "hebrew"}))

    def test_day_then_month_menu(self, entry: DateEntry, session: CallSession) -> None:
        asked = entry.begin(session, FlowState("event_type"))
        assert asked.state.stage == "date_day"
        assert asked.effect.step.name == "event_day"
        assert asked.effect.step.accepts("30") and not asked.effect.step.accepts("31")

        menu = entry.advance(session, asked.state, "9")

        # 5784 is a leap year: Tishrei through Elul with both Adars
        assert menu.effect.step.name == "event_month"
        assert len(menu.effect.step.allowed) == 13
        assert menu.state["hebrew_months"][0][0] == 7

    def test_month_choice_is_converted_and_announced(self, entry: DateEntry, session: CallSession) -> None:
        menu = entry.advance(session, FlowState("date_day"), "9")
        sivan = next(i for i, (month, _) in enumerate(menu.state["hebrew_months"], start=1) if month == 3)

        confirm = entry.advance(session, menu.state, str(sivan))

        assert confirm.state["event_date"] == date(2024, 6, 15)
        assert confirm.effect.step.prompts[0] == Prompt.of("EVENT.CONFIRM_DATE", date="9 Sivan 5784")
        assert entry.advance(session, confirm.state, "1") == confirm.state.to("date_done")

    def test_day_missing_from_month_is_reentered(self, entry: DateEntry, session: CallSession) -> None:
        menu = entry.advance(session, FlowState("date_day"), "30")
        iyar = next(i for i, (month, _) in enumerate(menu.state["hebrew_months"], start=1) if month == 2)

        retry = entry.advance(session, menu.state, str(iyar))

        assert retry.state.stage == "date_day"
        assert isinstance(retry.effect, Say)
        assert retry.effect.prompts == (Prompt("EVENT.INVALID_HEBREW_DATE"),)
        assert retry.effect.then.step.name == "event_day"


class TestGiftSelection:
    def test_stops_offering_at_max_gifts(self, settings: Settings) -> None:
        gifts = GiftSelection(settings.model_copy(update={"max_gifts": 2}))
        t = gifts.begin(FlowState("gift_catalog"), GIFTS)
        t = gifts.advance(t.state, "2")
        assert t.effect.step.name == "gift_more_1"
        t = gifts.advance(t.state, "1")
        assert t.effect.step.allowed == ("1", "3")

        t = gifts.advance(t.state, "3")

        assert t.state.stage == "gift_confirm"
        assert [g.name for g in t.state["gifts"]] == ["Necklace", "Voucher"]

    def test_rejected_confirmation_restarts_selection(self, settings: Settings) -> None:
        gifts = GiftSelection(settings)
        t = gifts.begin(FlowState("gift_catalog"), GIFTS)
        t = gifts.advance(t.state, "1")
        t = gifts.advance(t.state, "2")

        restarted = gifts.advance(t.state, "2")

        assert restarted.state.stage == "gift_pick"
        assert restarted.state["gifts"] == ()
        assert restarted.effect.step.allowed == ("1", "2", "3")

    def test_warning_precedes_confirmation(self, settings: Settings) -> None:
        gifts = GiftSelection(settings)
        warning = Prompt("VOUCHERS.FINAL_WARNING")
        t = gifts.begin(FlowState("gift_catalog"), GIFTS, warning=warning)
        t = gifts.advance(t.state, "1")
        t = gifts.advance(t.state, "2")

        assert t.effect.step.prompts[0] == warning
        assert gifts.advance(t.state, "1").stage == "gifts_done"


class TestFollowUpFlows:
    def test_single_eligible_event_is_announced_and_taken(self, settings: Settings, session: CallSession) -> None:
        flow = LotteryFlow(settings)
        history = [_event(1, date(2024, 7, 1), lottery_track=2), _event(2, date(2024, 8, 1))]

        t = flow.advance(session, FlowState("history"), history)

        assert t.state["event"].id == 2
        assert isinstance(t.effect, Say)
        assert t.effect.prompts[0].key == "EVENT.SELECTED_EVENT"
        assert t.effect.then.prompts == (Prompt("LOTTERY.WELCOME"),)

    def test_several_eligible_events_are_offered(self, settings: Settings, session: CallSession) -> None:
        flow = LotteryFlow(settings)
        history = [_event(1, date(2024, 7, 1)), _event(2, date(2024, 8, 1))]

        t = flow.advance(session, FlowState("history"), history)
        assert t.effect.step.allowed == ("1", "2")

        chosen = flow.advance(session, t.state, "2")
        assert chosen.state["event"].id == 2

    def test_no_eligible_event_ends_the_call(self, settings: Settings, session: CallSession) -> None:
        flow = TrackSelectionFlow(settings)

        t = flow.advance(session, FlowState("history"), [_event(1, date(2024, 7, 1), level_type_id=3)])

        assert t.effect == Finish((Prompt("EVENT.NO_ELIGIBLE_EVENTS"),))

    def test_handed_off_event_skips_history(self, settings: Settings, session: CallSession) -> None:
        flow = build_flows(settings)[CallState.VOUCHERS]
        event = _event(4, date(2024, 7, 1), level_type_id=1)

        t = flow.start(session, {"event": event})

        assert t.state["event"] == event
        assert t.effect == Query("list_gifts", {"user_id": CALLER.user_id})


def test_every_state_with_a_flow_is_built(settings: Settings) -> None:
    flows = build_flows(settings)

    assert set(flows) == {
        CallState.IDENTIFYING,
        CallState.MAIN_MENU,
        CallState.REPORT_EVENT,
        CallState.TRACK_SELECTION,
        CallState.VOUCHERS,
        CallState.LOTTERY,
        CallState.FULFILLMENT,
        CallState.PROXY_MENU,
    }
    assert all(flow.state is state for state, flow in flows.items())
