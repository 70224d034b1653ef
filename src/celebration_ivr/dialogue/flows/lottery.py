"""
Lottery entry: enroll one event into a numbered lottery track.
"""

from collections.abc import Sequence
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.dialogue.effects import (
    Ask,
    FlowState,
    Query,
    Transition,
    finish,
    retry_or_give_up,
    say,
)
from celebration_ivr.dialogue.flows.follow_up import EventFollowUpFlow
from celebration_ivr.dialogue.models import CallSession, CallState
from celebration_ivr.dialogue.steps import StepSpec, yes_no_step
from celebration_ivr.events.repository import EventRecord


class LotteryFlow(EventFollowUpFlow):
    state = CallState.LOTTERY

    def eligible(self, session: CallSession, events: Sequence[EventRecord]) -> list[EventRecord]:
        return [e for e in events if e.lottery_track is None]

    def _track_step(self) -> StepSpec:
        count = self.settings.lottery_track_count
        return StepSpec(
            name="lottery_track",
            prompts=(Prompt.of("LOTTERY.TRACK_SELECTION", count=count),),
            allowed=tuple(str(n) for n in range(1, count + 1)),
            echo=Prompt("GENERAL.YOU_CHOSE"),
        )

    def begin(self, session: CallSession, state: FlowState) -> Transition:
        return Transition(state.to("track"), say(Prompt("LOTTERY.WELCOME"), then=Ask(self._track_step())))

    def resume(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        match state.stage:
            case "track":
                track = int(value)
                confirm = yes_no_step(
                    "confirm_track",
                    [Prompt.of("LOTTERY.CONFIRM_TRACK", track=track), Prompt("GENERAL.CONFIRM_OPTIONS")],
                )
                return Transition(state.to("confirm", track=track), Ask(confirm))
            case "confirm":
                if value == "1":
                    params = {"event_id": state["event"].id, "track": state["track"]}
                    return Transition(state.to("saved"), Query("save_lottery_track", params))
                return retry_or_give_up(
                    state,
                    "track_rejections",
                    self.settings.max_retries,
                    Ask(self._track_step()),
                    "track",
                )
            case "saved":
                return Transition(
                    state.to("done"),
                    finish(Prompt.of("LOTTERY.ENTRY_SUCCESS", track=value.lottery_track)),
                )
        raise ValueError(f"Unexpected lottery stage: {state.stage}")
