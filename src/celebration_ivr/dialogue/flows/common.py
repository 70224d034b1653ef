"""
Building blocks shared by several sub-flows: date entry, gift selection and
picking one of the caller's events.

The embedded sub-loops own a stage prefix inside the parent flow's state.
``advance`` returns a ``Transition`` while the loop still needs the caller,
and the parent's ``FlowState`` once the loop has its answer.
"""

from collections.abc import Sequence
from datetime import date
from typing import Any

from celebration_ivr.catalog.repository import CatalogItem
from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.config import Settings
from celebration_ivr.dialogue.effects import Ask, FlowState, Transition, retry_or_give_up, say
from celebration_ivr.dialogue.models import CallSession
from celebration_ivr.dialogue.steps import StepSpec, choice_step, digits_step, yes_no_step
from celebration_ivr.events.repository import EventRecord
from celebration_ivr.shared.dates import (
    HEBREW_MONTH_DAYS,
    Calendar,
    display_date,
    format_date,
    hebrew_months,
    hebrew_year,
    infer_hebrew_event_date,
    parse_day_month,
)


def catalog_step(name: str, intro: Prompt, items: Sequence[CatalogItem]) -> StepSpec:
    return choice_step(name, [intro], [(str(item.key), item.name) for item in items])


def by_key(items: Sequence[CatalogItem], raw: str) -> CatalogItem:
    return next(item for item in items if str(item.key) == raw)


def event_label(event: EventRecord, calendar: Calendar = "gregorian") -> Prompt:
    return Prompt.of(
        "EVENT.SELECTED_EVENT",
        event_type=event.event_type_name,
        date=display_date(event.event_date, calendar),
    )


def event_choice_step(events: Sequence[EventRecord], calendar: Calendar = "gregorian") -> StepSpec:
    return choice_step(
        "event",
        [Prompt("EVENT.SELECT_EVENT")],
        [(str(i), event_label(e, calendar)) for i, e in enumerate(events, start=1)],
    )


class DateEntry:
    """Event date entry, then a yes/no confirmation.

    Gregorian callers key ``DDMM``; Hebrew-calendar callers key the day and
    then pick the month from a menu of the current Hebrew year. Both infer
    the year the same way.
    """

    STAGES = ("date", "date_day", "date_month", "date_confirm")

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def handles(self, state: FlowState) -> bool:
        return state.stage in self.STAGES

    def step(self, session: CallSession) -> StepSpec:
        window = self._settings.date_past_window_days

        def _parse(raw: str) -> Any:
            return parse_day_month(raw, session.today, window)

        return digits_step(
            "event_date",
            [Prompt("EVENT.ENTER_DATE")],
            4,
            validator=lambda raw: _parse(raw) is not None,
            formatter=lambda raw: format_date(_parse(raw)),
        )

    def hebrew_day_step(self) -> StepSpec:
        return StepSpec(
            name="event_day",
            prompts=(Prompt("EVENT.ENTER_HEBREW_DAY"),),
            min_digits=1,
            max_digits=2,
            validator=lambda raw: 1 <= int(raw) <= HEBREW_MONTH_DAYS,
        )

    def _ask_date(self, session: CallSession, state: FlowState) -> Transition:
        if self._settings.date_calendar == "hebrew":
            return Transition(state.to("date_day"), Ask(self.hebrew_day_step()))
        return Transition(state.to("date"), Ask(self.step(session)))

    def begin(self, session: CallSession, state: FlowState) -> Transition:
        return self._ask_date(session, state)

    def _confirm(self, state: FlowState, event_date: date) -> Transition:
        confirm = yes_no_step(
            "confirm_date",
            [
                Prompt.of("EVENT.CONFIRM_DATE", date=display_date(event_date, self._settings.date_calendar)),
                Prompt("GENERAL.CONFIRM_OPTIONS"),
            ],
        )
        return Transition(state.to("date_confirm", event_date=event_date), Ask(confirm))

    def _retry(self, session: CallSession, state: FlowState, notice: Prompt | None = None) -> Transition:
        ask = self._ask_date(session, state)
        retry = say(notice, then=ask.effect) if notice is not None else ask.effect
        return retry_or_give_up(
            state,
            "date_rejections",
            self._settings.max_retries,
            retry,
            ask.state.stage,
        )

    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition | FlowState:
        if state.stage == "date":
            event_date = parse_day_month(value, session.today, self._settings.date_past_window_days)
            return self._confirm(state, event_date)

        if state.stage == "date_day":
            months = tuple(hebrew_months(hebrew_year(session.today)))
            step = choice_step(
                "event_month",
                [Prompt("EVENT.SELECT_HEBREW_MONTH")],
                [(str(i), name) for i, (_, name) in enumerate(months, start=1)],
            )
            return Transition(state.to("date_month", hebrew_day=int(value), hebrew_months=months), Ask(step))

        if state.stage == "date_month":
            month, _ = state["hebrew_months"][int(value) - 1]
            event_date = infer_hebrew_event_date(
                state["hebrew_day"],
                month,
                session.today,
                self._settings.date_past_window_days,
            )
            if event_date is None:
                return self._retry(session, state, Prompt("EVENT.INVALID_HEBREW_DATE"))
            return self._confirm(state, event_date)

        if value == "1":
            return state.to("date_done")
        return self._retry(session, state)


class GiftSelection:
    """Up to ``max_gifts`` distinct gifts, "another?" after each, then confirm.

    Rejecting the confirmation starts the selection over.
    """

    PREFIX = "gift_"

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def handles(self, state: FlowState) -> bool:
        return state.stage.startswith(self.PREFIX)

    @staticmethod
    def _remaining(state: FlowState) -> list[CatalogItem]:
        chosen = {g.id for g in state["gifts"]}
        return [g for g in state["gift_catalog"] if g.id not in chosen]

    def _pick(self, state: FlowState) -> Transition:
        number = len(state["gifts"]) + 1
        intro = Prompt("EVENT.GIFT_SELECTION" if number == 1 else "EVENT.ADDITIONAL_GIFT_SELECTION")
        step = catalog_step(f"gift_{number}", intro, self._remaining(state))
        return Transition(state.to("gift_pick"), Ask(step))

    def _confirm(self, state: FlowState) -> Transition:
        names = ", ".join(g.name for g in state["gifts"])
        prompts = [Prompt.of("EVENT.CONFIRM_GIFTS", gifts=names), Prompt("GENERAL.CONFIRM_OPTIONS")]
        warning = state.get("gift_warning")
        if warning is not None:
            prompts.insert(0, warning)
        return Transition(state.to("gift_confirm"), Ask(yes_no_step("gift_confirm", prompts)))

    def begin(
        self,
        state: FlowState,
        catalog: Sequence[CatalogItem],
        warning: Prompt | None = None,
    ) -> Transition:
        state = state.to("gift_pick", gift_catalog=tuple(catalog), gifts=(), gift_warning=warning)
        return self._pick(state)

    def advance(self, state: FlowState, value: Any) -> Transition | FlowState:
        if state.stage == "gift_pick":
            gift = by_key(self._remaining(state), value)
            state = state.to("gift_pick", gifts=(*state["gifts"], gift))
            if len(state["gifts"]) < self._settings.max_gifts and self._remaining(state):
                step = yes_no_step(f"gift_more_{len(state['gifts'])}", [Prompt("EVENT.SELECT_ANOTHER_GIFT")])
                return Transition(state.to("gift_more"), Ask(step))
            return self._confirm(state)

        if state.stage == "gift_more":
            return self._pick(state) if value == "1" else self._confirm(state)

        # gift_confirm
        if value == "1":
            return state.to("gifts_done")
        restarted = state.to("gift_pick", gifts=())
        retry = self._pick(restarted)
        return retry_or_give_up(
            restarted,
            "gift_restarts",
            self._settings.max_retries,
            retry.effect,
            "gift_pick",
        )
