"""
Identification: the only unconditional entry point of every call.
"""

from collections.abc import Mapping
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.dialogue.effects import (
    Ask,
    CallFlow,
    FlowState,
    Handoff,
    Query,
    Transition,
    say,
)
from celebration_ivr.dialogue.models import CallSession, CallState
from celebration_ivr.dialogue.steps import digits_step
from celebration_ivr.identity.resolver import is_valid_national_id


class IdentifyFlow(CallFlow):
    """Greet, collect the 9-digit national ID and resolve the caller.

    An unknown ID is terminal: ``resolve_caller`` raises and the
    orchestrator announces the not-found message.
    """

    state = CallState.IDENTIFYING

    def start(self, session: CallSession, params: Mapping[str, Any]) -> Transition:
        step = digits_step("national_id", [Prompt("STUDENT.ENTER_ID")], 9, validator=is_valid_national_id)
        return Transition(FlowState("national_id"), say(Prompt("GENERAL.WELCOME"), then=Ask(step)))

    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        if state.stage == "national_id":
            return Transition(state.to("identity"), Query("resolve_caller", {"national_id": value}))

        # Greeting plays from the main menu, once the caller's texts are loaded
        return Transition(
            state.to("identified"),
            Handoff(CallState.MAIN_MENU, {"greet": True}, identity=value),
        )
