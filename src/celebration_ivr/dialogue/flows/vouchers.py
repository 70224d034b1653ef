"""
Voucher selection for an event that already has a track.
"""

from collections.abc import Sequence
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.config import Settings
from celebration_ivr.dialogue.effects import FlowState, Query, Transition, finish
from celebration_ivr.dialogue.flows.common import GiftSelection
from celebration_ivr.dialogue.flows.follow_up import EventFollowUpFlow
from celebration_ivr.dialogue.models import CallOutcome, CallSession, CallState
from celebration_ivr.events.repository import EventRecord


class VouchersFlow(EventFollowUpFlow):
    state = CallState.VOUCHERS

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._gifts = GiftSelection(settings)

    def eligible(self, session: CallSession, events: Sequence[EventRecord]) -> list[EventRecord]:
        return [e for e in events if e.level_type_id is not None and not e.has_gifts]

    def begin(self, session: CallSession, state: FlowState) -> Transition:
        return Transition(state.to("gift_catalog"), Query("list_gifts", {"user_id": session.user_id}))

    def resume(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        if self._gifts.handles(state):
            result = self._gifts.advance(state, value)
            if isinstance(result, Transition):
                return result
            params = {"event_id": result["event"].id, "gifts": list(result["gifts"])}
            return Transition(result.to("saved"), Query("save_gifts", params))

        if state.stage == "gift_catalog":
            if not value:
                return Transition(
                    state.to("none"),
                    finish(Prompt("GENERAL.NO_DATA"), outcome=CallOutcome.NO_DATA),
                )
            return self._gifts.begin(state, value, warning=Prompt("VOUCHERS.FINAL_WARNING"))

        return Transition(state.to("done"), finish(Prompt("VOUCHERS.SAVED")))
