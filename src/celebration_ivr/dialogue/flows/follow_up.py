"""
Base for sub-flows that act on one of the caller's existing events.
"""

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.dialogue.effects import Ask, CallFlow, FlowState, Query, Transition, finish, say
from celebration_ivr.dialogue.flows.common import event_choice_step, event_label
from celebration_ivr.dialogue.models import CallSession
from celebration_ivr.events.repository import EventRecord


class EventFollowUpFlow(CallFlow):
    """Load history, narrow it to eligible events, let the caller pick one.

    A single eligible event is announced and taken without asking. A flow
    entered through a handoff may be given the event directly.
    """

    @abstractmethod
    def eligible(self, session: CallSession, events: Sequence[EventRecord]) -> list[EventRecord]:
        """Events this flow may act on."""
        ...

    @abstractmethod
    def begin(self, session: CallSession, state: FlowState) -> Transition:
        """First transition once ``state["event"]`` is chosen."""
        ...

    @abstractmethod
    def resume(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        """Flow-specific stages after the event is chosen."""
        ...

    def start(self, session: CallSession, params: Mapping[str, Any]) -> Transition:
        event = params.get("event")
        if event is not None:
            return self.begin(session, FlowState("chosen", {"event": event}))
        return Transition(
            FlowState("history"),
            Query("caller_history", {"student_id": session.identity.student_id}),
        )

    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        if state.stage == "history":
            events = self.eligible(session, value)
            if not events:
                return Transition(state.to("none"), finish(Prompt("EVENT.NO_ELIGIBLE_EVENTS")))
            if len(events) == 1:
                chosen = state.to("chosen", event=events[0])
                inner = self.begin(session, chosen)
                label = event_label(events[0], self.settings.date_calendar)
                return Transition(inner.state, say(label, then=inner.effect))
            step = event_choice_step(events, self.settings.date_calendar)
            return Transition(state.to("event", events=tuple(events)), Ask(step))

        if state.stage == "event":
            event = state["events"][int(value) - 1]
            return self.begin(session, state.to("chosen", event=event))

        return self.resume(session, state, value)
