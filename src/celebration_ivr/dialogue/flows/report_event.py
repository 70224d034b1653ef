"""
Direct event report: type, date, create-or-edit notice, level type, gifts.
"""

from collections.abc import Mapping
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.config import Settings
from celebration_ivr.dialogue.effects import (
    Ask,
    CallFlow,
    FlowState,
    Query,
    Transition,
    finish,
    say,
)
from celebration_ivr.dialogue.flows.common import DateEntry, GiftSelection, by_key, catalog_step
from celebration_ivr.dialogue.models import CallSession, CallState
from celebration_ivr.shared.dates import display_date


class ReportEventFlow(CallFlow):
    """Report a new celebration, or edit the one already on record.

    The caller hears which of the two applies right after the date is
    confirmed, before anything else is collected.
    """

    state = CallState.REPORT_EVENT

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._date = DateEntry(settings)
        self._gifts = GiftSelection(settings)

    def start(self, session: CallSession, params: Mapping[str, Any]) -> Transition:
        return Transition(FlowState("types"), Query("list_event_types", {"user_id": session.user_id}))

    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        if self._date.handles(state):
            result = self._date.advance(session, state, value)
            if isinstance(result, Transition):
                return result
            return self._check_existing(session, result)

        if self._gifts.handles(state):
            result = self._gifts.advance(state, value)
            if isinstance(result, Transition):
                return result
            return self._save(session, result)

        match state.stage:
            case "types":
                step = catalog_step("event_type", Prompt("EVENT.SELECT_TYPE"), value)
                return Transition(state.to("event_type", event_types=tuple(value)), Ask(step))
            case "event_type":
                event_type = by_key(state["event_types"], value)
                return self._date.begin(session, state.to("event_type", event_type=event_type))
            case "existing":
                key = "EVENT.EDIT_EXISTING" if value is not None else "EVENT.CREATE_NEW"
                notice = Prompt.of(
                    key,
                    event_type=state["event_type"].name,
                    date=display_date(state["event_date"], self.settings.date_calendar),
                )
                return Transition(
                    state.to("level_types", existing=value),
                    say(notice, then=Query("list_level_types", {"user_id": session.user_id})),
                )
            case "level_types":
                if not value:
                    return self._load_gifts(session, state.to("level_types", level_type=None))
                step = catalog_step("level_type", Prompt("EVENT.SELECT_LEVEL"), value)
                return Transition(state.to("level", level_types=tuple(value)), Ask(step))
            case "level":
                level_type = by_key(state["level_types"], value)
                return self._load_gifts(session, state.to("level", level_type=level_type))
            case "gift_catalog":
                if not value:
                    return self._save(session, state.to("gifts_done", gifts=()))
                return self._gifts.begin(state, value)
            case "saved":
                return Transition(
                    state.to("done"),
                    finish(
                        Prompt.of(
                            "EVENT.SAVE_SUCCESS",
                            event_type=state["event_type"].name,
                            date=display_date(value.event_date, self.settings.date_calendar),
                        )
                    ),
                )
        raise ValueError(f"Unexpected report stage: {state.stage}")

    def _check_existing(self, session: CallSession, state: FlowState) -> Transition:
        params = {
            "student_id": session.identity.student_id,
            "event_type_id": state["event_type"].id,
            "event_date": state["event_date"],
        }
        return Transition(state.to("existing"), Query("find_existing", params))

    def _load_gifts(self, session: CallSession, state: FlowState) -> Transition:
        return Transition(state.to("gift_catalog"), Query("list_gifts", {"user_id": session.user_id}))

    def _save(self, session: CallSession, state: FlowState) -> Transition:
        params = {
            "existing": state["existing"],
            "student": session.identity,
            "event_type": state["event_type"],
            "event_date": state["event_date"],
            "level_type": state["level_type"],
            "gifts": list(state["gifts"]),
        }
        return Transition(state.to("saved"), Query("save_event", params))
