"""
Class representative ("tatnikit") reporting, for themselves or a classmate.
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
    retry_or_give_up,
    say,
)
from celebration_ivr.dialogue.flows.common import DateEntry, by_key, catalog_step
from celebration_ivr.dialogue.models import CallSession, CallState
from celebration_ivr.dialogue.steps import StepSpec, digits_step, yes_no_step
from celebration_ivr.identity.resolver import is_valid_national_id
from celebration_ivr.shared.dates import display_date


def _whom_step() -> StepSpec:
    return StepSpec(name="proxy_target", prompts=(Prompt("TATNIKIT.MENU"),), allowed=("1", "2"))


def _classmate_step() -> StepSpec:
    return digits_step(
        "classmate_id",
        [Prompt("TATNIKIT.ENTER_STUDENT_TZ")],
        9,
        validator=is_valid_national_id,
    )


def _another_step() -> StepSpec:
    return yes_no_step("another_student", [Prompt("TATNIKIT.ANOTHER_STUDENT")])


class ProxyReportFlow(CallFlow):
    """Loop of reports a representative files for their class.

    An event that is already registered is only confirmed, never
    duplicated; a new one is saved with the representative as reporter and
    no gifts.
    """

    state = CallState.PROXY_MENU

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._date = DateEntry(settings)

    def start(self, session: CallSession, params: Mapping[str, Any]) -> Transition:
        params = {"caller": session.identity, "today": session.today}
        return Transition(FlowState("representative"), Query("resolve_representative", params))

    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        if self._date.handles(state):
            result = self._date.advance(session, state, value)
            if isinstance(result, Transition):
                return result
            params = {
                "student_id": result["target"].student_id,
                "event_type_id": result["event_type"].id,
                "event_date": result["event_date"],
            }
            return Transition(result.to("existing"), Query("find_existing", params))

        match state.stage:
            case "representative":
                welcome = Prompt.of("TATNIKIT.WELCOME", class_name=value.class_name)
                return Transition(
                    FlowState("whom", {"representative": value}),
                    say(welcome, then=Ask(_whom_step())),
                )
            case "whom":
                if value == "1":
                    return self._load_types(session, state.to("whom", target=state["representative"].caller))
                return Transition(state.to("classmate_id"), Ask(_classmate_step()))
            case "classmate_id":
                params = {"representative": state["representative"], "national_id": value}
                return Transition(state.to("classmate"), Query("resolve_proxy_target", params))
            case "classmate":
                if value is None:
                    return retry_or_give_up(
                        state,
                        "classmate_misses",
                        self.settings.max_retries,
                        say(Prompt("TATNIKIT.STUDENT_NOT_IN_CLASS"), then=Ask(_classmate_step())),
                        "classmate_id",
                    )
                return self._load_types(session, state.to("classmate", target=value))
            case "types":
                step = catalog_step("event_type", Prompt("EVENT.SELECT_TYPE"), value)
                return Transition(state.to("event_type", event_types=tuple(value), type_step=step), Ask(step))
            case "event_type":
                event_type = by_key(state["event_types"], value)
                return self._date.begin(session, state.to("event_type", event_type=event_type))
            case "existing":
                return self._existing(state, value)
            case "exists":
                if value == "1":
                    params = {"existing": state["existing"], "reporter": state["representative"].caller}
                    return Transition(state.to("confirmed"), Query("confirm_proxy_report", params))
                return retry_or_give_up(
                    state,
                    "type_changes",
                    self.settings.max_retries,
                    Ask(state["type_step"]),
                    "event_type",
                )
            case "confirmed":
                return Transition(
                    state.to("another"),
                    say(Prompt("TATNIKIT.EVENT_CONFIRMED"), then=Ask(_another_step())),
                )
            case "saved":
                saved = Prompt.of(
                    "TATNIKIT.EVENT_SAVED",
                    event_type=value.event_type_name,
                    student=state["target"].name,
                    date=display_date(value.event_date, self.settings.date_calendar),
                )
                return Transition(state.to("another"), say(saved, then=Ask(_another_step())))
            case "another":
                if value == "1":
                    return Transition(
                        FlowState("whom", {"representative": state["representative"]}),
                        Ask(_whom_step()),
                    )
                return Transition(state.to("done"), finish(Prompt("TATNIKIT.GOODBYE")))
        raise ValueError(f"Unexpected proxy report stage: {state.stage}")

    def _load_types(self, session: CallSession, state: FlowState) -> Transition:
        return Transition(state.to("types"), Query("list_event_types", {"user_id": session.user_id}))

    def _existing(self, state: FlowState, existing: Any) -> Transition:
        if existing is not None:
            notice = Prompt.of(
                "TATNIKIT.EVENT_EXISTS",
                student=state["target"].name,
                event_type=existing.event_type_name,
                date=display_date(existing.event_date, self.settings.date_calendar),
            )
            options = StepSpec(
                name="existing_event",
                prompts=(Prompt("TATNIKIT.EXISTS_OPTIONS"),),
                allowed=("1", "2"),
            )
            return Transition(state.to("exists", existing=existing), say(notice, then=Ask(options)))

        params = {
            "existing": None,
            "student": state["target"],
            "event_type": state["event_type"],
            "event_date": state["event_date"],
            "gifts": None,
            "reporter": state["representative"].caller,
        }
        return Transition(state.to("saved"), Query("save_event", params))
