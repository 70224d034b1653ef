"""
Main menu with options computed from the caller's history.
"""

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.dialogue.effects import Ask, CallFlow, Effect, FlowState, Handoff, Query, Transition, say
from celebration_ivr.dialogue.models import CallSession, CallState
from celebration_ivr.dialogue.steps import choice_step
from celebration_ivr.events.repository import EventRecord
from celebration_ivr.identity.resolver import CallerIdentity


def menu_options(
    identity: CallerIdentity,
    history: Sequence[EventRecord],
    today: date,
) -> list[tuple[str, CallState, Prompt]]:
    """Options offered to a caller, as (key, target state, label).

    Reporting is always offered. Follow-ups on existing events need at least
    one prior event; the post-event survey needs an event strictly in the
    past.
    """
    options = [("1", CallState.REPORT_EVENT, Prompt("MENU.REPORT_EVENT"))]
    if history:
        options.append(("2", CallState.TRACK_SELECTION, Prompt("MENU.TRACK_SELECTION")))
        options.append(("3", CallState.VOUCHERS, Prompt("MENU.VOUCHERS")))
    if any(e.event_date < today for e in history):
        options.append(("4", CallState.FULFILLMENT, Prompt("MENU.FULFILLMENT")))
    if history:
        options.append(("5", CallState.LOTTERY, Prompt("MENU.LOTTERY")))
    if identity.is_representative:
        options.append(("6", CallState.PROXY_MENU, Prompt("MENU.PROXY")))
    return options


class MainMenuFlow(CallFlow):
    state = CallState.MAIN_MENU

    def start(self, session: CallSession, params: Mapping[str, Any]) -> Transition:
        history: Effect = Query("caller_history", {"student_id": session.identity.student_id})
        if params.get("greet"):
            history = say(Prompt.of("STUDENT.GREETING", name=session.identity.name), then=history)
        return Transition(FlowState("history"), history)

    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        if state.stage == "history":
            options = menu_options(session.identity, value, session.today)
            step = choice_step(
                "main_menu",
                [Prompt("MENU.MAIN")],
                [(key, label) for key, _, label in options],
            )
            targets = {key: target for key, target, _ in options}
            return Transition(state.to("option", targets=targets), Ask(step))

        return Transition(state.to("chosen"), Handoff(state["targets"][value]))
