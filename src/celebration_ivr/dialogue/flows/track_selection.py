"""
Track selection: attach a level type to an event that has none.
"""

from collections.abc import Sequence
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.dialogue.effects import (
    Ask,
    FlowState,
    Handoff,
    Query,
    Transition,
    finish,
    retry_or_give_up,
    say,
)
from celebration_ivr.dialogue.flows.common import by_key, catalog_step
from celebration_ivr.dialogue.flows.follow_up import EventFollowUpFlow
from celebration_ivr.dialogue.models import CallOutcome, CallSession, CallState
from celebration_ivr.dialogue.steps import yes_no_step
from celebration_ivr.events.repository import EventRecord


class TrackSelectionFlow(EventFollowUpFlow):
    state = CallState.TRACK_SELECTION

    def eligible(self, session: CallSession, events: Sequence[EventRecord]) -> list[EventRecord]:
        return [e for e in events if e.level_type_id is None and not e.completed]

    def begin(self, session: CallSession, state: FlowState) -> Transition:
        return Transition(state.to("level_types"), Query("list_level_types", {"user_id": session.user_id}))

    def resume(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        match state.stage:
            case "level_types":
                if not value:
                    return Transition(
                        state.to("none"),
                        finish(Prompt("GENERAL.NO_DATA"), outcome=CallOutcome.NO_DATA),
                    )
                step = catalog_step("level_type", Prompt("EVENT.SELECT_LEVEL"), value)
                return Transition(state.to("level", level_types=tuple(value), level_step=step), Ask(step))
            case "level":
                level_type = by_key(state["level_types"], value)
                confirm = yes_no_step(
                    "confirm_level",
                    [Prompt.of("TRACK.CONFIRM", level_type=level_type.name), Prompt("GENERAL.CONFIRM_OPTIONS")],
                )
                return Transition(state.to("confirm", level_type=level_type), Ask(confirm))
            case "confirm":
                if value == "1":
                    params = {"event_id": state["event"].id, "level_type": state["level_type"]}
                    return Transition(state.to("saved"), Query("set_level_type", params))
                return retry_or_give_up(
                    state,
                    "level_rejections",
                    self.settings.max_retries,
                    Ask(state["level_step"]),
                    "level",
                )
            case "saved":
                saved = Prompt.of(
                    "TRACK.SAVED",
                    level_type=state["level_type"].name,
                    event_type=value.event_type_name,
                )
                step = yes_no_step("continue_to_vouchers", [Prompt("TRACK.CONTINUE_TO_VOUCHERS")])
                return Transition(state.to("continue", event=value), say(saved, then=Ask(step)))
            case "continue":
                if value == "1":
                    return Transition(state.to("done"), Handoff(CallState.VOUCHERS, {"event": state["event"]}))
                return Transition(state.to("done"), finish(Prompt("GENERAL.GOODBYE")))
        raise ValueError(f"Unexpected track selection stage: {state.stage}")
