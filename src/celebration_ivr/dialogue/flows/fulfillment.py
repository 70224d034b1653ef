"""
Post-event fulfillment survey: a fixed sequence of 1..N rating questions,
optionally closed by a recorded comment.
"""

from collections.abc import Sequence
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.dialogue.effects import Ask, FlowState, Query, Transition, finish, say
from celebration_ivr.dialogue.flows.follow_up import EventFollowUpFlow
from celebration_ivr.dialogue.models import CallSession, CallState
from celebration_ivr.dialogue.steps import StepSpec, recording_step
from celebration_ivr.events.repository import EventRecord


class FulfillmentFlow(EventFollowUpFlow):
    state = CallState.FULFILLMENT

    def eligible(self, session: CallSession, events: Sequence[EventRecord]) -> list[EventRecord]:
        return [e for e in events if e.event_date < session.today and not e.completed]

    def _question(self, number: int) -> StepSpec:
        levels = self.settings.fulfillment_max_level
        return StepSpec(
            name=f"question_{number}",
            prompts=(Prompt(f"FULFILLMENT.QUESTION_{number}"),),
            allowed=tuple(str(n) for n in range(1, levels + 1)),
        )

    def begin(self, session: CallSession, state: FlowState) -> Transition:
        intro = Prompt.of("FULFILLMENT.START_MESSAGE", max_level=self.settings.fulfillment_max_level)
        return Transition(state.to("question", answers=()), say(intro, then=Ask(self._question(1))))

    def _save(self, session: CallSession, state: FlowState, recording: str | None) -> Transition:
        params = {
            "event_id": state["event"].id,
            "answers": list(state["answers"]),
            "completed_on": session.today,
            "recording": recording,
        }
        return Transition(state.to("saved"), Query("save_fulfillment", params))

    def resume(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        match state.stage:
            case "question":
                answers = (*state["answers"], int(value))
                state = state.to("question", answers=answers)
                if len(answers) < self.settings.fulfillment_question_count:
                    return Transition(state, Ask(self._question(len(answers) + 1)))
                if self.settings.fulfillment_record_comment:
                    step = recording_step("comment", [Prompt("FULFILLMENT.RECORD_COMMENT")])
                    return Transition(state.to("comment"), Ask(step))
                return self._save(session, state, None)
            case "comment":
                return self._save(session, state, value)
            case "saved":
                return Transition(state.to("done"), finish(Prompt("FULFILLMENT.DATA_SAVED")))
        raise ValueError(f"Unexpected fulfillment stage: {state.stage}")
